from datetime import datetime
from decimal import Decimal, InvalidOperation

from apps.banking.models import BankAccount, Transaction
from apps.banking.services import BankingService
from .base import BaseCsvImporter


VALID_TYPES = ['income', 'expense', 'loan', 'refund']
VALID_STATUSES = ['pending', 'paid', 'cancelled']
DATE_FORMATS = ['%Y-%m-%d', '%d/%m/%Y', '%d-%m-%Y']
TAX_COLUMNS = {'CGST': 'cgst', 'SGST': 'sgst', 'IGST': 'igst', 'TDS': 'tds_amount'}


def parse_date(value):
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value):
    try:
        return Decimal(value.replace(',', '')).quantize(Decimal('0.01'))
    except (InvalidOperation, AttributeError):
        return None


class TransactionImporter(BaseCsvImporter):
    """
    Import ledger transactions from CSV.

    Required columns: Date, Entity, Type, Amount, Party Name
    Optional columns: Bank Account, Category, Description, CGST, SGST, IGST, TDS, Status

    Entity is matched by name among the importing user's entities; Bank
    Account by account name within that entity. A row that matches an
    existing transaction (same entity, bank account, date, amount and type)
    is skipped as a duplicate.
    """
    required_columns = ['Date', 'Entity', 'Type', 'Amount', 'Party Name']

    def __init__(self, user, entities):
        super().__init__(user, entities)
        self._entities_by_name = {e.name.lower(): e for e in self.entities}

    def resolve_entity(self, name):
        return self._entities_by_name.get((name or '').lower())

    def resolve_bank_account(self, entity, name):
        if not name:
            return None
        return BankAccount.objects.for_entity(entity).filter(account_name__iexact=name).first()

    def validate_row(self, row_num, row):
        errors = []
        if not row.get('Date'):
            errors.append("Date is required.")
        elif parse_date(row['Date']) is None:
            errors.append(f"Invalid Date '{row['Date']}'. Use YYYY-MM-DD or DD/MM/YYYY.")

        entity = None
        if not row.get('Entity'):
            errors.append("Entity is required.")
        else:
            entity = self.resolve_entity(row['Entity'])
            if entity is None:
                errors.append(f"Entity '{row['Entity']}' not found.")

        txn_type = row.get('Type', '').lower()
        if not txn_type:
            errors.append("Type is required.")
        elif txn_type not in VALID_TYPES:
            errors.append(f"Invalid Type '{row['Type']}'. Must be one of: {', '.join(VALID_TYPES)}")

        if not row.get('Party Name'):
            errors.append("Party Name is required.")

        amount = parse_amount(row.get('Amount', ''))
        if not row.get('Amount'):
            errors.append("Amount is required.")
        elif amount is None or amount <= 0:
            errors.append(f"Invalid Amount '{row['Amount']}'. Must be a positive number.")

        for column in TAX_COLUMNS:
            if row.get(column):
                value = parse_amount(row[column])
                if value is None or value < 0:
                    errors.append(f"Invalid {column} '{row[column]}'. Must be zero or more.")

        status = row.get('Status', '').lower()
        if status and status not in VALID_STATUSES:
            errors.append(f"Invalid Status '{row['Status']}'. Must be one of: {', '.join(VALID_STATUSES)}")

        if entity is not None and row.get('Bank Account'):
            if self.resolve_bank_account(entity, row['Bank Account']) is None:
                errors.append(f"Bank Account '{row['Bank Account']}' not found for {entity.name}.")

        return errors

    def process_row(self, row_num, row, batch):
        entity = self.resolve_entity(row['Entity'])
        if entity is None:
            return f"Entity '{row['Entity']}' not found"
        bank_account = self.resolve_bank_account(entity, row.get('Bank Account'))
        if row.get('Bank Account') and bank_account is None:
            return f"Bank Account '{row['Bank Account']}' not found"

        transaction_date = parse_date(row['Date'])
        amount = parse_amount(row['Amount'])
        txn_type = row['Type'].lower()

        duplicate = Transaction.objects.filter(
            entity=entity,
            bank_account=bank_account,
            transaction_date=transaction_date,
            amount=amount,
            transaction_type=txn_type,
        ).exists()
        if duplicate:
            return "Duplicate transaction"

        taxes = {
            field: parse_amount(row[column]) if row.get(column) else Decimal('0.00')
            for column, field in TAX_COLUMNS.items()
        }
        BankingService(entity, self.user).create_transaction(
            transaction_type=txn_type,
            party_name=row['Party Name'],
            amount=amount,
            bank_account=bank_account,
            transaction_date=transaction_date,
            category=row.get('Category', ''),
            description=row.get('Description', ''),
            status=(row.get('Status') or 'pending').lower(),
            import_batch=batch,
            **taxes,
        )
        return None

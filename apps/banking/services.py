# apps/banking/services.py
"""
Banking service: account balances and transaction status changes.

BankingService handles:
- Recomputing an account's balance from its activity
- Creating transactions
- Bulk status updates with per-transaction outcomes
"""
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.entities.models import get_next_sequence_number
from .models import BankAccount, Transaction

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


class BankingService:
    """
    Service for bank accounts and ledger transactions.

    Usage:
        service = BankingService(entity, user)

        txn = service.create_transaction(
            transaction_type='expense',
            party_name='Office Rent',
            amount=Decimal('25000.00'),
            bank_account=account,
            status='paid',
        )

        result = service.bulk_update_status([1, 2, 3], 'paid')
        # {'updated': [1, 2], 'errors': [{'id': 3, 'error': 'Transaction not found'}]}
    """

    BULK_STATUSES = ('pending', 'paid', 'cancelled')

    def __init__(self, entity, user=None):
        self.entity = entity
        self.user = user

    # ===== BALANCES =====

    @staticmethod
    def compute_balance(bank_account):
        """
        Opening balance plus cleared payments and settled transactions.

        Income adds to the balance; expense, loan and refund lines reduce it.
        """
        from apps.payments.models import Payment

        cleared = Payment.objects.filter(bank_account=bank_account, status='cleared')
        received = cleared.filter(payment_type='received').aggregate(t=Sum('amount'))['t'] or ZERO
        made = cleared.filter(payment_type='made').aggregate(t=Sum('amount'))['t'] or ZERO

        settled = Transaction.objects.filter(
            bank_account=bank_account,
            status__in=Transaction.SETTLED_STATUSES,
        )
        income = settled.filter(transaction_type='income').aggregate(t=Sum('total_amount'))['t'] or ZERO
        outgoing = settled.exclude(transaction_type='income').aggregate(t=Sum('total_amount'))['t'] or ZERO

        return bank_account.opening_balance + received - made + income - outgoing

    def recompute_balance(self, bank_account):
        """Recompute and store current_balance. Returns the new balance."""
        if bank_account is None:
            return None
        balance = self.compute_balance(bank_account)
        BankAccount.objects.filter(pk=bank_account.pk).update(current_balance=balance)
        bank_account.current_balance = balance
        return balance

    # ===== TRANSACTIONS =====

    @transaction.atomic
    def create_transaction(
        self,
        transaction_type,
        party_name,
        amount,
        bank_account=None,
        transaction_date=None,
        category='',
        description='',
        cgst=0,
        sgst=0,
        igst=0,
        tds_amount=0,
        status='pending',
        import_batch=None,
    ):
        if transaction_date is None:
            transaction_date = timezone.localdate()
        if bank_account is not None and bank_account.entity_id != self.entity.pk:
            raise ValidationError({'bank_account': 'Bank account belongs to a different entity.'})

        txn = Transaction(
            entity=self.entity,
            bank_account=bank_account,
            transaction_date=transaction_date,
            transaction_type=transaction_type,
            category=category,
            party_name=party_name,
            description=description,
            amount=amount,
            cgst=cgst or 0,
            sgst=sgst or 0,
            igst=igst or 0,
            tds_amount=tds_amount or 0,
            status=status,
            import_batch=import_batch,
            created_by=self.user,
            updated_by=self.user,
        )
        txn.full_clean(exclude=['entity', 'transaction_code', 'total_amount'])
        if txn.calculate_total() <= 0:
            raise ValidationError({'amount': 'Total amount must be greater than zero.'})
        txn.transaction_code = get_next_sequence_number(
            self.entity, 'TX', f"{transaction_date.year}",
        )
        txn.save()

        if txn.is_settled:
            self.recompute_balance(bank_account)
        return txn

    def bulk_update_status(self, transaction_ids, status):
        """
        Set the status of many transactions.

        Each transaction is updated in its own database transaction, so one
        failure does not roll back the others.

        Args:
            transaction_ids: List of Transaction IDs
            status: 'pending', 'paid' or 'cancelled'

        Returns:
            dict: {'updated': [ids], 'errors': [{'id': id, 'error': str}]}

        Raises:
            ValidationError: Empty id list or invalid status
        """
        if not transaction_ids:
            raise ValidationError('Transaction IDs are required.')
        if status not in self.BULK_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'. Must be one of: {', '.join(self.BULK_STATUSES)}"
            )

        updated = []
        errors = []
        for txn_id in transaction_ids:
            try:
                with transaction.atomic():
                    self._set_status(txn_id, status)
                updated.append(txn_id)
            except (Transaction.DoesNotExist, ValueError, TypeError):
                errors.append({'id': txn_id, 'error': 'Transaction not found'})
            except ValidationError as exc:
                errors.append({'id': txn_id, 'error': '; '.join(exc.messages)})

        logger.info(
            'Bulk status update to %s for entity %s: %s updated, %s failed',
            status, self.entity.pk, len(updated), len(errors),
        )
        return {'updated': updated, 'errors': errors}

    def _set_status(self, txn_id, status):
        txn = Transaction.objects.select_for_update().get(pk=int(txn_id), entity=self.entity)
        if txn.status == 'reconciled':
            raise ValidationError('Reconciled transactions cannot be changed.')
        if txn.status == status:
            return txn

        txn.status = status
        txn.updated_by = self.user
        txn.save(update_fields=['status', 'updated_by', 'total_amount', 'updated_at'])
        if txn.bank_account_id:
            account = BankAccount.objects.select_for_update().get(pk=txn.bank_account_id)
            self.recompute_balance(account)
        return txn

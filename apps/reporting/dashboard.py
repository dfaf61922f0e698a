# apps/reporting/dashboard.py
"""
Dashboard aggregation service.

Read-only rollups across one or more entities: bank balances, income and
expense over a date window and per month, receivables and payables with
their overdue share and aging, and the parties owing (or owed) the most.
"""
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from shared.conf import ledger_setting
from shared.money import Money
from apps.invoicing.aging import AgingClassifier, BUCKETS
from apps.invoicing.status import OPEN_STATUSES

ZERO = Decimal('0.00')


class DashboardAggregator:
    """
    Usage:
        dash = DashboardAggregator(request_context.entities)
        dash.stats(start_date, end_date)
        dash.ar_ap_summary(top_n=5)
        dash.entity_summary(start_date, end_date)
        dash.monthly_trends(months=6)
    """

    def __init__(self, entities, as_of=None):
        self.entities = list(entities)
        self.as_of = as_of or timezone.localdate()

    def _window(self, start_date, end_date):
        if end_date is None:
            end_date = self.as_of
        if start_date is None:
            start_date = end_date - timedelta(days=30)
        return start_date, end_date

    # ─── BALANCES & TRANSACTIONS ────────────────────────────────────────────

    def balances_by_currency(self):
        from apps.banking.models import BankAccount

        balances = {}
        accounts = BankAccount.objects.for_entities(self.entities).filter(is_active=True)
        for account in accounts:
            row = balances.setdefault(account.currency, {
                'total': Money.zero(account.currency),
                'accounts': 0,
                'positive': Money.zero(account.currency),
                'negative': Money.zero(account.currency),
            })
            balance = Money(account.current_balance, account.currency)
            row['total'] = row['total'] + balance
            row['accounts'] += 1
            if balance.is_negative():
                row['negative'] = row['negative'] + balance
            else:
                row['positive'] = row['positive'] + balance

        return {
            currency: {
                'total': row['total'].amount,
                'accounts': row['accounts'],
                'positive': row['positive'].amount,
                'negative': row['negative'].amount,
            }
            for currency, row in balances.items()
        }

    def transaction_totals(self, start_date=None, end_date=None):
        from apps.banking.models import Transaction

        start_date, end_date = self._window(start_date, end_date)
        in_window = Transaction.objects.for_entities(self.entities).filter(
            transaction_date__gte=start_date,
            transaction_date__lte=end_date,
        )
        settled = in_window.filter(status__in=Transaction.SETTLED_STATUSES)
        by_type = {
            row['transaction_type']: row
            for row in settled.values('transaction_type').annotate(
                total=Sum('total_amount'), count=Count('id'),
            )
        }

        def total(txn_type):
            return by_type.get(txn_type, {}).get('total') or ZERO

        income = total('income')
        expense = total('expense')
        return {
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
            'income': income,
            'expense': expense,
            'loan': total('loan'),
            'refund': total('refund'),
            'net': income - expense,
            'count': sum(row['count'] for row in by_type.values()),
            'pending_count': in_window.filter(status='pending').count(),
        }

    def monthly_trends(self, months=6):
        """
        Settled income and expense per calendar month.

        Covers the current month and the `months` before it, oldest first.
        Months without transactions are included with zero totals.
        """
        from apps.banking.models import Transaction

        first_month = self.as_of.replace(day=1) - relativedelta(months=months)
        rows = (
            Transaction.objects.for_entities(self.entities)
            .filter(
                status__in=Transaction.SETTLED_STATUSES,
                transaction_date__gte=first_month,
                transaction_date__lte=self.as_of,
            )
            .annotate(month=TruncMonth('transaction_date'))
            .values('month', 'transaction_type')
            .annotate(total=Sum('total_amount'), count=Count('id'))
            .order_by('month')
        )
        totals = defaultdict(dict)
        for row in rows:
            month = row['month']
            key = (month.year, month.month)
            totals[key][row['transaction_type']] = (row['total'] or ZERO, row['count'])

        trends = []
        for offset in range(months + 1):
            month = first_month + relativedelta(months=offset)
            by_type = totals.get((month.year, month.month), {})
            amounts = {
                txn_type: by_type.get(txn_type, (ZERO, 0))[0]
                for txn_type in ('income', 'expense', 'loan', 'refund')
            }
            trends.append({
                'year': month.year,
                'month': month.month,
                'month_name': month.strftime('%b'),
                **amounts,
                'net': amounts['income'] - amounts['expense'],
                'count': sum(count for _, count in by_type.values()),
            })
        return trends

    def stats(self, start_date=None, end_date=None):
        return {
            'as_of': self.as_of.isoformat(),
            'balances': self.balances_by_currency(),
            'transactions': self.transaction_totals(start_date, end_date),
        }

    # ─── RECEIVABLES / PAYABLES ─────────────────────────────────────────────

    def _open_invoices(self, invoice_type, currency):
        from apps.invoicing.models import Invoice

        return Invoice.objects.for_entities(self.entities).filter(
            invoice_type=invoice_type,
            status__in=OPEN_STATUSES,
            amount_due__gt=0,
            currency=currency,
        )

    def invoice_summary(self, invoice_type, top_n=None, currency=None):
        """
        Outstanding totals for sales (receivables) or purchase (payables) invoices.

        Overdue means due before the as-of date with money still owed.
        """
        currency = currency or ledger_setting('DEFAULT_CURRENCY')
        top_n = top_n or ledger_setting('TOP_N_PARTIES')
        party_field = 'customer' if invoice_type == 'sales' else 'vendor'
        overdue_q = Q(due_date__lt=self.as_of)

        qs = self._open_invoices(invoice_type, currency)
        totals = qs.aggregate(
            total=Sum('amount_due'),
            overdue=Sum('amount_due', filter=overdue_q),
            overdue_count=Count('id', filter=overdue_q),
            count=Count('id'),
        )
        total = totals['total'] or ZERO
        overdue = totals['overdue'] or ZERO

        aging = defaultdict(lambda: Money.zero(currency))
        for due_date, amount_due in qs.values_list('due_date', 'amount_due'):
            bucket = AgingClassifier.classify(due_date, self.as_of, amount_due).bucket
            aging[bucket] = aging[bucket] + Money(amount_due, currency)

        top_parties = list(
            qs.values(f'{party_field}_id', f'{party_field}__name')
            .annotate(
                outstanding=Sum('amount_due'),
                overdue=Sum('amount_due', filter=overdue_q),
                invoice_count=Count('id'),
            )
            .order_by('-outstanding', f'{party_field}__name')[:top_n]
        )

        return {
            'currency': currency,
            'total': total,
            'current': total - overdue,
            'overdue': overdue,
            'overdue_count': totals['overdue_count'],
            'invoice_count': totals['count'],
            'aging': {bucket: aging[bucket].amount for bucket in BUCKETS},
            'top_parties': [
                {
                    'id': row[f'{party_field}_id'],
                    'name': row[f'{party_field}__name'],
                    'outstanding': row['outstanding'],
                    'overdue': row['overdue'] or ZERO,
                    'invoice_count': row['invoice_count'],
                }
                for row in top_parties
            ],
        }

    def ar_ap_summary(self, top_n=None, currency=None):
        return {
            'as_of': self.as_of.isoformat(),
            'receivables': self.invoice_summary('sales', top_n, currency),
            'payables': self.invoice_summary('purchase', top_n, currency),
        }

    # ─── PER ENTITY ─────────────────────────────────────────────────────────

    def entity_summary(self, start_date=None, end_date=None):
        """Balance and income/expense per entity, highest balance first."""
        from apps.banking.models import BankAccount, Transaction

        start_date, end_date = self._window(start_date, end_date)
        rows = []
        for entity in self.entities:
            accounts = BankAccount.objects.for_entity(entity).filter(is_active=True)
            balance = accounts.aggregate(total=Sum('current_balance'))['total'] or ZERO
            flows = Transaction.objects.for_entity(entity).filter(
                status__in=Transaction.SETTLED_STATUSES,
                transaction_date__gte=start_date,
                transaction_date__lte=end_date,
            ).aggregate(
                income=Sum('total_amount', filter=Q(transaction_type='income')),
                expense=Sum('total_amount', filter=Q(transaction_type='expense')),
            )
            income = flows['income'] or ZERO
            expense = flows['expense'] or ZERO
            rows.append({
                'entity_id': entity.pk,
                'name': entity.name,
                'entity_type': entity.entity_type,
                'balance': balance,
                'accounts': accounts.count(),
                'income': income,
                'expense': expense,
                'net': income - expense,
            })
        return sorted(rows, key=lambda r: -r['balance'])

# apps/reporting/services.py
"""
Reporting service for receivables and payables.

AgingReportService handles:
- A/R aging (sales invoices by customer)
- A/P aging (purchase invoices by vendor)

Buckets are recomputed for the requested as-of date; stored invoice
buckets are not modified.
"""
from collections import defaultdict
from decimal import Decimal

from django.utils import timezone

from apps.invoicing.aging import AgingClassifier, BUCKETS
from apps.invoicing.models import Invoice
from apps.invoicing.status import OPEN_STATUSES


def _empty_buckets():
    return {bucket: Decimal('0.00') for bucket in BUCKETS}


class AgingReportService:

    @staticmethod
    def get_aging_report(entity, invoice_type='sales', as_of_date=None):
        """
        Aging report for one entity.

        Returns:
        {
            'as_of_date': str,
            'invoice_type': 'sales' | 'purchase',
            'buckets': [{'bucket': str, 'count': int, 'amount': Decimal}, ...],
            'parties': [
                {
                    'party_id': int,
                    'party_name': str,
                    'buckets': {bucket: Decimal},
                    'total': Decimal,
                    'invoices': [...],
                },
                ...
            ],
            'total': Decimal,
        }
        """
        if as_of_date is None:
            as_of_date = timezone.localdate()
        party_field = 'customer' if invoice_type == 'sales' else 'vendor'

        open_invoices = (
            Invoice.objects.for_entity(entity)
            .filter(invoice_type=invoice_type, status__in=OPEN_STATUSES, amount_due__gt=0)
            .select_related(party_field)
            .order_by(f'{party_field}__name', 'due_date')
        )

        bucket_counts = defaultdict(int)
        bucket_amounts = _empty_buckets()
        parties = {}

        for inv in open_invoices:
            aging = AgingClassifier.classify(inv.due_date, as_of_date, inv.amount_due)
            party = getattr(inv, party_field)
            row = parties.setdefault(party.pk, {
                'party_id': party.pk,
                'party_name': party.name,
                'buckets': _empty_buckets(),
                'total': Decimal('0.00'),
                'invoices': [],
            })
            row['buckets'][aging.bucket] += inv.amount_due
            row['total'] += inv.amount_due
            row['invoices'].append({
                'invoice_id': inv.pk,
                'invoice_number': inv.invoice_number,
                'invoice_date': inv.invoice_date.isoformat(),
                'due_date': inv.due_date.isoformat(),
                'days_overdue': aging.days_overdue,
                'aging_bucket': aging.bucket,
                'total_amount': inv.total_amount,
                'amount_paid': inv.amount_paid,
                'amount_due': inv.amount_due,
            })
            bucket_counts[aging.bucket] += 1
            bucket_amounts[aging.bucket] += inv.amount_due

        return {
            'as_of_date': as_of_date.isoformat(),
            'invoice_type': invoice_type,
            'buckets': [
                {'bucket': bucket, 'count': bucket_counts[bucket], 'amount': bucket_amounts[bucket]}
                for bucket in BUCKETS
            ],
            'parties': sorted(parties.values(), key=lambda p: -p['total']),
            'total': sum(bucket_amounts.values(), Decimal('0.00')),
        }

# apps/parties/credit.py
"""
Credit exposure of customers and vendors.

A party's outstanding balance is the sum of amount_due over its
non-cancelled invoices of the matching type (sales for customers, purchase
for vendors) in the entity's base currency, which is also the currency of
the credit limit. Utilization compares that balance with the credit limit.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Sum

from shared.money import Money

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')
ZERO = Decimal('0.00')

# (lower bound in percent, band), checked from the top down
UTILIZATION_BANDS = [
    (Decimal('90'), 'critical'),
    (Decimal('75'), 'warning'),
    (Decimal('50'), 'caution'),
]


def credit_utilization(credit_limit, outstanding):
    """Outstanding as a percentage of the limit. Not capped at 100; 0 when there is no limit."""
    if not credit_limit or credit_limit <= 0:
        return ZERO
    pct = Decimal(outstanding) / Decimal(credit_limit) * HUNDRED
    return pct.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def utilization_band(pct):
    for lower, band in UTILIZATION_BANDS:
        if pct >= lower:
            return band
    return 'ok'


@dataclass(frozen=True)
class CreditExposure:
    credit_limit: Decimal
    current_outstanding: Decimal
    credit_utilization: Decimal
    available_credit: Decimal
    band: str
    open_invoice_count: int

    def as_dict(self):
        return {
            'credit_limit': self.credit_limit,
            'current_outstanding': self.current_outstanding,
            'credit_utilization': self.credit_utilization,
            'available_credit': self.available_credit,
            'band': self.band,
            'open_invoice_count': self.open_invoice_count,
        }


class CreditExposureCalculator:
    """
    Recomputes party balances from invoices.

    Usage:
        calc = CreditExposureCalculator()
        calc.refresh(customer)          # rewrites customer.current_outstanding
        calc.exposure(customer).band    # 'ok', 'caution', 'warning', 'critical'
    """

    def _open_invoices(self, party):
        from apps.invoicing.models import Invoice

        party_field = 'customer' if party.invoice_type == 'sales' else 'vendor'
        return Invoice.objects.filter(
            entity_id=party.entity_id,
            invoice_type=party.invoice_type,
            currency=self.credit_currency(party),
            **{party_field: party},
        ).exclude(status='cancelled')

    def credit_currency(self, party):
        return party.entity.base_currency

    def outstanding_money(self, party):
        currency = self.credit_currency(party)
        total = self._open_invoices(party).aggregate(total=Sum('amount_due'))['total']
        return Money(total or ZERO, currency)

    def current_outstanding(self, party):
        return self.outstanding_money(party).amount

    def refresh(self, party):
        """
        Recompute and store the party's outstanding balance.

        Only the cached column is written so concurrent edits to other
        party fields are not overwritten.
        """
        outstanding = self.current_outstanding(party)
        if outstanding != party.current_outstanding:
            logger.info(
                'Outstanding for %s %s changed %s -> %s',
                party.__class__.__name__, party.pk, party.current_outstanding, outstanding,
            )
        party.current_outstanding = outstanding
        type(party).objects.filter(pk=party.pk).update(current_outstanding=outstanding)
        return outstanding

    def exposure(self, party):
        outstanding = self.outstanding_money(party)
        limit = Money(party.credit_limit or ZERO, outstanding.currency)
        pct = credit_utilization(limit.amount, outstanding.amount)
        open_count = self._open_invoices(party).filter(amount_due__gt=0).count()
        return CreditExposure(
            credit_limit=limit.amount,
            current_outstanding=outstanding.amount,
            credit_utilization=pct,
            available_credit=max(Money.zero(outstanding.currency), limit - outstanding).amount,
            band=utilization_band(pct),
            open_invoice_count=open_count,
        )

# apps/invoicing/tax.py
"""
Invoice totals.

TaxTotalsCalculator is the single place invoice totals are derived. The
service, the serializers and Invoice.recalculate() all call it; totals
supplied by a client are ignored.

    subtotal     = sum(quantity * rate)
    line_tax     = sum(quantity * rate * tax_rate / 100)
    gst_amount   = igst                     if gst_type == 'igst'
                   cgst + sgst              otherwise
    tax_total    = line_tax + gst_amount
    total_amount = subtotal + tax_total - tds_amount + round_off
"""
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError

from shared.conf import ledger_setting
from shared.money import Money, to_decimal


HUNDRED = Decimal('100')

GST_TYPES = ('cgst_sgst', 'igst')


def _field(line, name, default=None):
    if isinstance(line, dict):
        return line.get(name, default)
    return getattr(line, name, default)


def _number(value, label):
    """Parse a quantity/rate/percentage without rounding it to cents."""
    if value is None or value == '':
        raise ValidationError(f"{label} is required.")
    try:
        result = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{label} must be a number.")
    if not result.is_finite():
        raise ValidationError(f"{label} must be a number.")
    return result


@dataclass(frozen=True)
class LineTotals:
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class TaxTotals:
    subtotal: Decimal
    line_tax: Decimal
    gst_amount: Decimal
    tax_total: Decimal
    total_amount: Decimal
    lines: tuple


class TaxTotalsCalculator:
    """
    Computes invoice totals from line items and document-level taxes.

    Usage:
        totals = TaxTotalsCalculator('INR').calculate(
            lines=[{'quantity': 10, 'rate': '1000.00', 'tax_rate': 18}],
            gst_type='cgst_sgst',
        )
        totals.total_amount  # Decimal('11800.00')
    """

    def __init__(self, currency=None):
        self.currency = currency or ledger_setting('DEFAULT_CURRENCY')

    def money(self, value):
        return Money(to_decimal(value or 0), self.currency)

    def line_totals(self, line, index=1):
        quantity = _number(_field(line, 'quantity'), f"Line {index}: quantity")
        rate = _number(_field(line, 'rate'), f"Line {index}: rate")
        tax_rate = _number(_field(line, 'tax_rate', 0) or 0, f"Line {index}: tax rate")

        if quantity <= 0:
            raise ValidationError(f"Line {index}: quantity must be greater than zero.")
        if rate < 0:
            raise ValidationError(f"Line {index}: rate cannot be negative.")
        if tax_rate < 0 or tax_rate > HUNDRED:
            raise ValidationError(f"Line {index}: tax rate must be between 0 and 100.")

        amount = Money(quantity * rate, self.currency)
        tax_amount = Money(quantity * rate * tax_rate / HUNDRED, self.currency)
        return LineTotals(
            amount=amount.amount,
            tax_amount=tax_amount.amount,
            total_amount=(amount + tax_amount).amount,
        )

    def calculate(self, lines, gst_type='cgst_sgst', cgst=0, sgst=0, igst=0,
                  tds_amount=0, round_off=0):
        """
        Compute totals.

        Raises:
            ValidationError: No lines, a bad line, negative tax/TDS, a
                component of the unused GST type, or a non-positive total
        """
        lines = list(lines or [])
        if not lines:
            raise ValidationError("At least one line item is required.")
        if gst_type not in GST_TYPES:
            raise ValidationError(f"Invalid GST type '{gst_type}'.")

        cgst = self.money(cgst)
        sgst = self.money(sgst)
        igst = self.money(igst)
        tds_amount = self.money(tds_amount)
        round_off = self.money(round_off)

        errors = {}
        for name, value in (('cgst', cgst), ('sgst', sgst), ('igst', igst), ('tds_amount', tds_amount)):
            if value.is_negative():
                errors[name] = f"{name} cannot be negative."
        if gst_type == 'igst' and not (cgst.is_zero() and sgst.is_zero()):
            errors['gst_type'] = "CGST/SGST must be zero when GST type is IGST."
        if gst_type == 'cgst_sgst' and not igst.is_zero():
            errors['gst_type'] = "IGST must be zero when GST type is CGST+SGST."
        if errors:
            raise ValidationError(errors)

        computed = tuple(self.line_totals(line, index) for index, line in enumerate(lines, start=1))
        subtotal = Money.sum((self.money(c.amount) for c in computed), self.currency)
        line_tax = Money.sum((self.money(c.tax_amount) for c in computed), self.currency)
        gst_amount = igst if gst_type == 'igst' else cgst + sgst
        tax_total = line_tax + gst_amount
        total_amount = subtotal + tax_total - tds_amount + round_off

        if not total_amount.is_positive():
            raise ValidationError(
                f"Invoice total must be greater than zero (computed {total_amount.amount})."
            )

        return TaxTotals(
            subtotal=subtotal.amount,
            line_tax=line_tax.amount,
            gst_amount=gst_amount.amount,
            tax_total=tax_total.amount,
            total_amount=total_amount.amount,
            lines=computed,
        )

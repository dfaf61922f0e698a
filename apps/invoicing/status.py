# apps/invoicing/status.py
"""
Invoice lifecycle status.

Status is never set by hand. It is recomputed from the invoice's amounts,
due date, finalisation and cancellation whenever one of those changes, and
on read against an as-of date.

    draft -> pending -> partially_paid -> paid
    pending, partially_paid -> overdue    (past due date)
    overdue -> paid
    any non-paid state -> cancelled
"""
from decimal import Decimal

from shared.exceptions import InvalidStateTransition


DRAFT = 'draft'
PENDING = 'pending'
PARTIALLY_PAID = 'partially_paid'
PAID = 'paid'
OVERDUE = 'overdue'
CANCELLED = 'cancelled'

STATUS_CHOICES = [
    (DRAFT, 'Draft'),
    (PENDING, 'Pending'),
    (PARTIALLY_PAID, 'Partially Paid'),
    (PAID, 'Paid'),
    (OVERDUE, 'Overdue'),
    (CANCELLED, 'Cancelled'),
]

# Statuses that still carry a balance
OPEN_STATUSES = (DRAFT, PENDING, PARTIALLY_PAID, OVERDUE)


class InvoiceStatusMachine:

    @staticmethod
    def resolve(total_amount, amount_paid, due_date, today, is_cancelled=False, is_finalized=True):
        if is_cancelled:
            return CANCELLED
        if total_amount - amount_paid <= Decimal('0'):
            return PAID
        # overdue wins over partially_paid; the paid amount is untouched
        if due_date is not None and today > due_date:
            return OVERDUE
        if amount_paid > 0:
            return PARTIALLY_PAID
        return PENDING if is_finalized else DRAFT

    @classmethod
    def for_invoice(cls, invoice, today):
        return cls.resolve(
            total_amount=invoice.total_amount,
            amount_paid=invoice.amount_paid,
            due_date=invoice.due_date,
            today=today,
            is_cancelled=invoice.cancelled_at is not None,
            is_finalized=invoice.is_finalized,
        )

    @staticmethod
    def assert_allocatable(invoice):
        if invoice.status in (PAID, CANCELLED):
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} is {invoice.status}; "
                f"no further payments can be allocated.",
                current_status=invoice.status,
            )

    @staticmethod
    def assert_editable(invoice):
        if invoice.status in (PAID, CANCELLED):
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be edited.",
                current_status=invoice.status,
            )
        if invoice.amount_paid > 0 or invoice.allocations.exists():
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} has payments allocated and cannot be edited.",
                current_status=invoice.status,
            )

    @staticmethod
    def assert_cancellable(invoice):
        if invoice.status == CANCELLED:
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} is already cancelled.",
                current_status=invoice.status,
            )
        if invoice.status == PAID:
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} is paid and cannot be cancelled.",
                current_status=invoice.status,
            )
        if invoice.allocations.exists():
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} has payment allocations. "
                f"Reverse them before cancelling.",
                current_status=invoice.status,
            )

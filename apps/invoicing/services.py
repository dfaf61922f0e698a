# apps/invoicing/services.py
"""
Invoicing service for sales and purchase invoices.

InvoicingService handles:
- Creating invoices with server-computed totals
- Editing invoices before any payment is allocated
- Finalizing and cancelling invoices
- Recomputing status and aging against an as-of date
- Querying open and overdue invoices
- Summarizing invoices by status
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from apps.entities.models import get_next_sequence_number
from apps.parties.credit import CreditExposureCalculator
from apps.parties.models import Customer, Vendor
from shared.conf import ledger_setting
from shared.exceptions import InvalidStateTransition, NotFound
from .models import Invoice, InvoiceLine
from .status import InvoiceStatusMachine, OPEN_STATUSES

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


class InvoicingService:
    """
    Service for invoice lifecycle operations.

    Usage:
        service = InvoicingService(entity, user)

        invoice = service.create_invoice(
            invoice_type='sales',
            party=customer,
            lines=[{'description': 'Consulting', 'quantity': 10, 'rate': '1000.00', 'tax_rate': 18}],
            finalize=True,
        )

        service.cancel(invoice.id, reason='Raised in error')
        service.refresh_statuses()   # age every open invoice to today
    """

    EDITABLE_FIELDS = [
        'invoice_date', 'due_date', 'reference_number', 'gst_type',
        'cgst', 'sgst', 'igst', 'tds_amount', 'round_off',
        'notes', 'terms_and_conditions',
    ]

    SEQUENCE_TYPES = {
        'sales': 'SI',
        'purchase': 'PI',
    }

    def __init__(self, entity, user=None):
        """
        Initialize invoicing service.

        Args:
            entity: Entity instance to scope operations
            user: User performing operations (for audit trail)
        """
        self.entity = entity
        self.user = user
        self.credit = CreditExposureCalculator()

    # ===== CREATION =====

    @transaction.atomic
    def create_invoice(
        self,
        invoice_type,
        party,
        lines,
        invoice_date=None,
        due_date=None,
        gst_type='cgst_sgst',
        cgst=0,
        sgst=0,
        igst=0,
        tds_amount=0,
        round_off=0,
        currency=None,
        reference_number='',
        notes='',
        terms_and_conditions='',
        finalize=False,
    ):
        """
        Create an invoice with its line items.

        Totals are always computed here; nothing supplied by the caller
        overrides them.

        Args:
            invoice_type: 'sales' or 'purchase'
            party: Customer (sales) or Vendor (purchase) of this entity
            lines: List of dicts with description, quantity, rate, tax_rate
            invoice_date: Defaults to today
            due_date: Defaults to invoice_date + party's terms
            finalize: Create as pending instead of draft

        Returns:
            Invoice instance

        Raises:
            ValidationError: Bad party, lines or amounts
        """
        self._validate_party(invoice_type, party)
        if invoice_date is None:
            invoice_date = timezone.localdate()
        if due_date is None:
            due_date = self._calculate_due_date(invoice_date, party)

        invoice = Invoice(
            entity=self.entity,
            invoice_type=invoice_type,
            customer=party if invoice_type == 'sales' else None,
            vendor=party if invoice_type == 'purchase' else None,
            invoice_date=invoice_date,
            due_date=due_date,
            gst_type=gst_type,
            cgst=cgst or 0,
            sgst=sgst or 0,
            igst=igst or 0,
            tds_amount=tds_amount or 0,
            round_off=round_off or 0,
            currency=currency or self.entity.base_currency,
            reference_number=reference_number,
            notes=notes,
            terms_and_conditions=terms_and_conditions,
            is_finalized=finalize,
            created_by=self.user,
            updated_by=self.user,
        )
        line_data = self._normalize_lines(lines)
        invoice.recalculate(lines=line_data)
        invoice.full_clean(exclude=['invoice_number', 'entity'], validate_constraints=False)

        invoice.invoice_number = self._generate_invoice_number(invoice_type, invoice_date)
        invoice.refresh_state()
        invoice.save()
        for data in line_data:
            InvoiceLine.objects.create(invoice=invoice, **data)

        self.credit.refresh(party)
        logger.info(
            'Invoice %s created for %s: total %s',
            invoice.invoice_number, party, invoice.total_amount,
        )
        return invoice

    # ===== EDITING =====

    @transaction.atomic
    def update_invoice(self, invoice_id, lines=None, expected_version=None, **changes):
        """
        Edit an invoice that has no payments allocated.

        Args:
            invoice_id: ID of the invoice
            lines: Replacement line items (optional)
            expected_version: Version the caller last read (optional)
            **changes: Any of EDITABLE_FIELDS

        Raises:
            InvalidStateTransition: Invoice is paid, cancelled or has allocations
            ConcurrencyConflict: Version mismatch
        """
        invoice = self._get_invoice_for_update(invoice_id)
        invoice.check_version(expected_version)
        InvoiceStatusMachine.assert_editable(invoice)

        unknown = set(changes) - set(self.EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        for field, value in changes.items():
            setattr(invoice, field, value)

        line_data = self._normalize_lines(lines) if lines is not None else None
        invoice.recalculate(lines=line_data)
        invoice.full_clean(exclude=['entity'], validate_constraints=False)

        if line_data is not None:
            invoice.lines.all().delete()
            for data in line_data:
                InvoiceLine.objects.create(invoice=invoice, **data)

        invoice.refresh_state()
        invoice.updated_by = self.user
        invoice.bump_version()
        invoice.save()

        self.credit.refresh(invoice.party)
        logger.info('Invoice %s updated', invoice.invoice_number)
        return invoice

    @transaction.atomic
    def finalize(self, invoice_id, expected_version=None):
        """Move a draft invoice to pending."""
        invoice = self._get_invoice_for_update(invoice_id)
        invoice.check_version(expected_version)
        if invoice.is_finalized:
            return invoice
        if invoice.status == 'cancelled':
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} is cancelled and cannot be finalized.",
                current_status=invoice.status,
            )

        invoice.is_finalized = True
        invoice.refresh_state()
        invoice.updated_by = self.user
        invoice.bump_version()
        invoice.save()
        logger.info('Invoice %s finalized', invoice.invoice_number)
        return invoice

    @transaction.atomic
    def cancel(self, invoice_id, reason='', expected_version=None):
        """
        Cancel an invoice.

        Cancelled invoices are kept (never deleted) but drop out of party
        balances, aging and dashboard totals.

        Raises:
            InvalidStateTransition: Paid, already cancelled, or has allocations
        """
        invoice = self._get_invoice_for_update(invoice_id)
        invoice.check_version(expected_version)
        InvoiceStatusMachine.assert_cancellable(invoice)

        invoice.cancelled_at = timezone.now()
        invoice.cancellation_reason = reason[:255]
        invoice.refresh_state()
        invoice.updated_by = self.user
        invoice.bump_version()
        invoice.save()

        self.credit.refresh(invoice.party)
        logger.info('Invoice %s cancelled: %s', invoice.invoice_number, reason or 'no reason given')
        return invoice

    # ===== STATUS / AGING =====

    @transaction.atomic
    def refresh_state(self, invoice_id, as_of=None):
        invoice = self._get_invoice_for_update(invoice_id)
        if invoice.refresh_state(as_of):
            invoice.save(update_fields=['amount_due', 'status', 'days_overdue', 'aging_bucket', 'updated_at'])
        return invoice

    def refresh_statuses(self, as_of=None):
        """
        Recompute status and aging of every open invoice in the entity.

        Status depends on the date, so this is what moves invoices into
        overdue and older aging buckets as time passes. Amounts are not
        touched and versions are not bumped.

        Returns:
            int: Number of invoices whose status or bucket changed
        """
        if as_of is None:
            as_of = timezone.localdate()
        changed = 0
        with transaction.atomic():
            invoices = Invoice.objects.for_entity(self.entity).filter(
                status__in=OPEN_STATUSES,
            ).select_for_update().order_by('pk')
            for invoice in invoices:
                if invoice.refresh_state(as_of):
                    invoice.save(update_fields=['amount_due', 'status', 'days_overdue', 'aging_bucket', 'updated_at'])
                    changed += 1
        if changed:
            logger.info('Refreshed %s invoice status(es) for entity %s as of %s', changed, self.entity.pk, as_of)
        return changed

    # ===== QUERIES =====

    def get_open_invoices(self, invoice_type=None, party=None):
        """Invoices with a balance due, oldest due date first."""
        qs = Invoice.objects.for_entity(self.entity).filter(
            status__in=OPEN_STATUSES,
            amount_due__gt=0,
        )
        if invoice_type:
            qs = qs.filter(invoice_type=invoice_type)
        if party is not None:
            qs = qs.filter(**{self._party_field(party): party})
        return qs.select_related('customer', 'vendor').order_by('due_date', 'pk')

    def get_overdue_invoices(self, invoice_type=None, party=None, as_of=None):
        if as_of is None:
            as_of = timezone.localdate()
        return self.get_open_invoices(invoice_type, party).filter(due_date__lt=as_of)

    def get_party_balance(self, party):
        return self.credit.current_outstanding(party)

    def get_invoice_summary(self, invoice_type=None, start_date=None, end_date=None, currency=None):
        """
        Invoice totals grouped by status, plus overall totals.

        Dates filter on invoice_date. Only invoices in one currency are
        summed (default: LEDGER['DEFAULT_CURRENCY']).

        Returns:
            dict: {'currency', 'by_status': [{'status', 'count', 'total_amount',
                   'total_paid', 'total_due'}], 'overall': {'total_invoices',
                   'total_amount', 'total_paid', 'total_due'}}
        """
        currency = currency or ledger_setting('DEFAULT_CURRENCY')
        qs = Invoice.objects.for_entity(self.entity).filter(currency=currency)
        if invoice_type:
            qs = qs.filter(invoice_type=invoice_type)
        if start_date:
            qs = qs.filter(invoice_date__gte=start_date)
        if end_date:
            qs = qs.filter(invoice_date__lte=end_date)

        sums = {
            'total_amount': Sum('total_amount'),
            'total_paid': Sum('amount_paid'),
            'total_due': Sum('amount_due'),
        }
        by_status = [
            {
                'status': row['status'],
                'count': row['count'],
                'total_amount': row['total_amount'] or ZERO,
                'total_paid': row['total_paid'] or ZERO,
                'total_due': row['total_due'] or ZERO,
            }
            for row in qs.values('status').annotate(count=Count('id'), **sums).order_by('status')
        ]
        overall = qs.aggregate(total_invoices=Count('id'), **sums)
        return {
            'currency': currency,
            'by_status': by_status,
            'overall': {
                'total_invoices': overall['total_invoices'],
                'total_amount': overall['total_amount'] or ZERO,
                'total_paid': overall['total_paid'] or ZERO,
                'total_due': overall['total_due'] or ZERO,
            },
        }

    # ===== HELPERS =====

    def _get_invoice_for_update(self, invoice_id):
        try:
            return Invoice.objects.select_for_update().get(id=invoice_id, entity=self.entity)
        except Invoice.DoesNotExist:
            raise NotFound(f"Invoice {invoice_id} not found", model='Invoice', pk=invoice_id)

    def _validate_party(self, invoice_type, party):
        if invoice_type not in self.SEQUENCE_TYPES:
            raise ValidationError({'invoice_type': f"Invalid invoice type '{invoice_type}'."})
        if party is None:
            raise ValidationError({'party': 'A customer or vendor is required.'})
        expected = Customer if invoice_type == 'sales' else Vendor
        if not isinstance(party, expected):
            raise ValidationError({
                'party': f"{invoice_type.title()} invoices require a {expected.__name__.lower()}."
            })
        if party.entity_id != self.entity.pk:
            raise ValidationError({'party': 'Party does not belong to this entity.'})

    def _party_field(self, party):
        return 'customer' if isinstance(party, Customer) else 'vendor'

    def _normalize_lines(self, lines):
        if not lines:
            raise ValidationError("At least one line item is required.")
        normalized = []
        for index, line in enumerate(lines, start=1):
            normalized.append({
                'line_number': index,
                'description': line.get('description') or f"Line {index}",
                'hsn_code': line.get('hsn_code', ''),
                'quantity': line.get('quantity'),
                'unit': line.get('unit') or 'nos',
                'rate': line.get('rate'),
                'tax_rate': line.get('tax_rate') or 0,
            })
        return normalized

    def _generate_invoice_number(self, invoice_type, invoice_date):
        return get_next_sequence_number(
            self.entity,
            self.SEQUENCE_TYPES[invoice_type],
            f"{invoice_date.year}",
        )

    def _calculate_due_date(self, invoice_date, party):
        """Due date from the party's terms code (immediate, net_N, custom)."""
        return invoice_date + timedelta(days=party.credit_days)

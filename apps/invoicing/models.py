# apps/invoicing/models.py
"""
Invoice models.

Models:
- Invoice: Sales invoice (to a customer) or purchase invoice (from a vendor)
- InvoiceLine: Line items on an invoice

amount_paid, amount_due, status, days_overdue and aging_bucket are derived.
They change only through AllocationEngine or InvoicingService, both of which
call refresh_state() after touching amounts.
"""
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q, F
from django.utils import timezone
from simple_history.models import HistoricalRecords

from shared.models import EntityMixin, TimestampMixin, VersionedMixin
from .aging import AgingClassifier, BUCKET_CHOICES
from .status import InvoiceStatusMachine, STATUS_CHOICES, OPEN_STATUSES, DRAFT
from .tax import TaxTotalsCalculator


class Invoice(EntityMixin, TimestampMixin, VersionedMixin):
    """
    An invoice raised to a customer (sales) or received from a vendor (purchase).

    Example:
        SI-2026-0001 to Acme Traders
        Subtotal 10,000.00 + line tax 1,800.00 = 11,800.00
        Paid 5,000.00, due 6,800.00 -> partially_paid
    """
    INVOICE_TYPE_CHOICES = [
        ('sales', 'Sales Invoice'),
        ('purchase', 'Purchase Invoice'),
    ]

    GST_TYPE_CHOICES = [
        ('cgst_sgst', 'CGST + SGST'),
        ('igst', 'IGST'),
    ]

    invoice_number = models.CharField(
        max_length=30,
        help_text="Auto-generated (e.g., 'SI-2026-0001')"
    )
    invoice_type = models.CharField(max_length=10, choices=INVOICE_TYPE_CHOICES)
    customer = models.ForeignKey(
        'parties.Customer',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='invoices'
    )
    vendor = models.ForeignKey(
        'parties.Vendor',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='invoices'
    )
    invoice_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    reference_number = models.CharField(
        max_length=100,
        blank=True,
        help_text="Vendor's bill number or customer PO"
    )

    # Tax
    gst_type = models.CharField(max_length=10, choices=GST_TYPE_CHOICES, default='cgst_sgst')
    cgst = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    sgst = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    igst = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tds_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    round_off = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'))

    # Totals (computed by TaxTotalsCalculator)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    line_tax = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_tax = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    # Settlement (derived)
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    amount_due = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='INR')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DRAFT)
    is_finalized = models.BooleanField(
        default=False,
        help_text="Finalized invoices show as pending rather than draft"
    )
    days_overdue = models.PositiveIntegerField(default=0)
    aging_bucket = models.CharField(max_length=10, choices=BUCKET_CHOICES, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    notes = models.TextField(blank=True)
    terms_and_conditions = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_invoices'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='updated_invoices'
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ['-invoice_date', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['entity', 'invoice_number'],
                name='unique_invoice_number_per_entity',
            ),
            models.CheckConstraint(
                condition=(
                    Q(invoice_type='sales', customer__isnull=False, vendor__isnull=True)
                    | Q(invoice_type='purchase', vendor__isnull=False, customer__isnull=True)
                ),
                name='invoice_party_matches_type',
            ),
            models.CheckConstraint(
                condition=Q(amount_paid__gte=0) & Q(amount_paid__lte=F('total_amount')),
                name='invoice_amount_paid_within_total',
            ),
            models.CheckConstraint(
                condition=Q(amount_due__gte=0),
                name='invoice_amount_due_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['entity', 'invoice_type', 'status']),
            models.Index(fields=['entity', 'due_date']),
            models.Index(fields=['entity', 'aging_bucket']),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.party}"

    @property
    def party(self):
        return self.customer if self.invoice_type == 'sales' else self.vendor

    @property
    def party_id(self):
        return self.customer_id if self.invoice_type == 'sales' else self.vendor_id

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES and self.amount_due > 0

    @property
    def is_overdue(self):
        return self.status == 'overdue'

    def clean(self):
        super().clean()
        if self.invoice_type == 'sales':
            if not self.customer_id:
                raise ValidationError({'customer': 'Customer is required for sales invoices.'})
            if self.vendor_id:
                raise ValidationError({'vendor': 'Sales invoices cannot have a vendor.'})
        elif self.invoice_type == 'purchase':
            if not self.vendor_id:
                raise ValidationError({'vendor': 'Vendor is required for purchase invoices.'})
            if self.customer_id:
                raise ValidationError({'customer': 'Purchase invoices cannot have a customer.'})
        if self.due_date and self.invoice_date and self.due_date < self.invoice_date:
            raise ValidationError({'due_date': 'Due date cannot be before invoice date.'})

    def recalculate(self, lines=None):
        """
        Recompute totals from line items with TaxTotalsCalculator.

        Args:
            lines: Iterable of lines (dicts or InvoiceLine); defaults to saved lines

        Returns:
            TaxTotals
        """
        if lines is None:
            lines = list(self.lines.all())
        totals = TaxTotalsCalculator(self.currency).calculate(
            lines=lines,
            gst_type=self.gst_type,
            cgst=self.cgst,
            sgst=self.sgst,
            igst=self.igst,
            tds_amount=self.tds_amount,
            round_off=self.round_off,
        )
        self.subtotal = totals.subtotal
        self.line_tax = totals.line_tax
        self.total_tax = totals.tax_total
        self.total_amount = totals.total_amount
        return totals

    def refresh_state(self, as_of=None):
        """
        Re-derive amount_due, status and aging from amounts and dates.

        Returns:
            bool: True if any derived field changed
        """
        if as_of is None:
            as_of = timezone.localdate()
        before = (self.amount_due, self.status, self.days_overdue, self.aging_bucket)

        self.amount_due = self.total_amount - self.amount_paid
        self.status = InvoiceStatusMachine.for_invoice(self, as_of)
        if self.status == 'cancelled':
            self.days_overdue = 0
            self.aging_bucket = ''
        else:
            aging = AgingClassifier.classify(self.due_date, as_of, self.amount_due)
            self.days_overdue = aging.days_overdue
            self.aging_bucket = aging.bucket or ''

        return before != (self.amount_due, self.status, self.days_overdue, self.aging_bucket)


class InvoiceLine(models.Model):
    """
    Line items on an invoice.

    amount, tax_amount and total_amount are filled by TaxTotalsCalculator.
    """
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name='lines'
    )
    line_number = models.PositiveIntegerField(default=1)
    description = models.CharField(max_length=500)
    hsn_code = models.CharField(max_length=10, blank=True, help_text="HSN/SAC code")
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        validators=[MinValueValidator(Decimal('0.001'))]
    )
    unit = models.CharField(max_length=20, default='nos')
    rate = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    class Meta:
        ordering = ['invoice', 'line_number']
        unique_together = [('invoice', 'line_number')]

    def __str__(self):
        return f"{self.invoice.invoice_number} Line {self.line_number}: {self.description}"

    def save(self, *args, **kwargs):
        computed = TaxTotalsCalculator(self.invoice.currency).line_totals(self, self.line_number)
        self.amount = computed.amount
        self.tax_amount = computed.tax_amount
        self.total_amount = computed.total_amount
        super().save(*args, **kwargs)

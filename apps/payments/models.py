# apps/payments/models.py
"""
Payment models.

Models:
- Payment: Money received from a customer or paid to a vendor
- PaymentAllocation: Links a payment to an invoice with an allocated amount

Example:
    Customer pays 10,000.00 by NEFT
    Allocated to SI-2026-0001: 4,000.00
    Allocated to SI-2026-0002: 6,000.00
    Unallocated: 0.00
"""
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from simple_history.models import HistoricalRecords

from shared.models import EntityMixin, TimestampMixin, VersionedMixin


class Payment(EntityMixin, TimestampMixin, VersionedMixin):
    """
    A single receipt or disbursement that can be spread across invoices.

    Workflow:
    1. Create in 'pending' status with a fixed amount
    2. Allocate to one or more open invoices of the same party
    3. Mark 'cleared' once the money lands; the bank balance follows
    4. Reconciled when cleared and fully allocated
    """
    PAYMENT_TYPE_CHOICES = [
        ('received', 'Payment Received'),
        ('made', 'Payment Made'),
    ]

    PAYMENT_MODE_CHOICES = [
        ('cash', 'Cash'),
        ('cheque', 'Cheque'),
        ('neft', 'NEFT'),
        ('rtgs', 'RTGS'),
        ('imps', 'IMPS'),
        ('upi', 'UPI'),
        ('card', 'Card'),
        ('other', 'Other'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('cleared', 'Cleared'),
        ('bounced', 'Bounced'),
        ('cancelled', 'Cancelled'),
    ]

    # Statuses that can take new allocations
    ALLOCATABLE_STATUSES = ('pending', 'cleared')

    payment_number = models.CharField(
        max_length=30,
        help_text="Auto-generated (e.g., 'PR2026100001')"
    )
    payment_type = models.CharField(max_length=10, choices=PAYMENT_TYPE_CHOICES)
    customer = models.ForeignKey(
        'parties.Customer',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )
    vendor = models.ForeignKey(
        'parties.Vendor',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )
    bank_account = models.ForeignKey(
        'banking.BankAccount',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments',
        help_text="Required unless payment mode is cash"
    )
    payment_date = models.DateField(default=timezone.localdate)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, default='INR')
    payment_mode = models.CharField(max_length=10, choices=PAYMENT_MODE_CHOICES, default='neft')
    reference_number = models.CharField(
        max_length=100,
        blank=True,
        help_text="UTR, UPI reference, card slip, etc."
    )
    cheque_number = models.CharField(max_length=20, blank=True)
    cheque_date = models.DateField(null=True, blank=True)
    tds_deducted = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Tax deducted at source on this payment"
    )
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')
    allocated_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of allocations (derived)"
    )
    is_reconciled = models.BooleanField(default=False)
    reconciled_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_payments'
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ['-payment_date', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['entity', 'payment_number'],
                name='unique_payment_number_per_entity',
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='payment_amount_positive',
            ),
            models.CheckConstraint(
                condition=Q(allocated_amount__gte=0) & Q(allocated_amount__lte=F('amount')),
                name='payment_allocated_within_amount',
            ),
            models.CheckConstraint(
                condition=(
                    Q(payment_type='received', customer__isnull=False, vendor__isnull=True)
                    | Q(payment_type='made', vendor__isnull=False, customer__isnull=True)
                ),
                name='payment_party_matches_type',
            ),
        ]
        indexes = [
            models.Index(fields=['entity', 'payment_type', 'status']),
            models.Index(fields=['entity', 'payment_date']),
        ]

    def __str__(self):
        return f"{self.payment_number} - {self.amount}"

    @property
    def party(self):
        return self.customer if self.payment_type == 'received' else self.vendor

    @property
    def invoice_type(self):
        """The invoice type this payment can settle."""
        return 'sales' if self.payment_type == 'received' else 'purchase'

    @property
    def unallocated_amount(self):
        return self.amount - self.allocated_amount

    @property
    def is_fully_allocated(self):
        return self.allocated_amount >= self.amount

    def clean(self):
        super().clean()
        errors = {}
        if self.amount is not None and self.amount <= 0:
            errors['amount'] = 'Amount must be greater than zero.'
        if self.tds_deducted is not None and self.tds_deducted < 0:
            errors['tds_deducted'] = 'TDS cannot be negative.'
        if self.payment_mode != 'cash' and not self.bank_account_id:
            errors['bank_account'] = 'Bank account is required for non-cash payments.'
        if self.payment_type == 'received' and not self.customer_id:
            errors['customer'] = 'Customer is required for payments received.'
        if self.payment_type == 'made' and not self.vendor_id:
            errors['vendor'] = 'Vendor is required for payments made.'
        if errors:
            raise ValidationError(errors)

    def refresh_reconciliation(self, as_of=None):
        """Reconciled once the money has cleared and every rupee is allocated."""
        reconciled = self.status == 'cleared' and self.is_fully_allocated
        if reconciled and not self.is_reconciled:
            self.reconciled_date = as_of or timezone.localdate()
        elif not reconciled:
            self.reconciled_date = None
        self.is_reconciled = reconciled


class PaymentAllocation(TimestampMixin):
    """
    The part of a payment applied to one invoice.

    Reachable from both sides: payment.allocations and invoice.allocations.
    """
    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name='allocations'
    )
    invoice = models.ForeignKey(
        'invoicing.Invoice',
        on_delete=models.PROTECT,
        related_name='allocations'
    )
    allocated_amount = models.DecimalField(max_digits=14, decimal_places=2)
    allocation_date = models.DateField(default=timezone.localdate)
    allocated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payment_allocations'
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ['payment', 'invoice']
        constraints = [
            models.UniqueConstraint(
                fields=['payment', 'invoice'],
                name='unique_allocation_per_payment_invoice',
            ),
            models.CheckConstraint(
                condition=Q(allocated_amount__gt=0),
                name='allocation_amount_positive',
            ),
        ]

    def __str__(self):
        return f"{self.payment.payment_number} -> {self.invoice.invoice_number}: {self.allocated_amount}"

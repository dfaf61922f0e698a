# apps/banking/models.py
"""
Bank account and ledger transaction models.

Models:
- BankAccount: A bank, overdraft, credit or cash account of an entity
- Transaction: A single income/expense/loan/refund line against an account
- ImportBatch: A staged CSV import waiting to be committed

BankAccount.current_balance is derived from the opening balance, cleared
payments and paid/reconciled transactions. BankingService.recompute_balance()
is the only writer.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone
from simple_history.models import HistoricalRecords

from shared.models import EntityMixin, TimestampMixin
from shared.values import BankDetails


CURRENCY_CHOICES = [
    ('INR', 'Indian Rupee'),
    ('USD', 'US Dollar'),
    ('EUR', 'Euro'),
    ('GBP', 'British Pound'),
]


class BankAccount(EntityMixin, TimestampMixin):
    """
    A money account held by an entity.

    Cash accounts carry no bank details; every other type needs an account
    number, bank name and IFSC code.
    """
    ACCOUNT_TYPE_CHOICES = [
        ('savings', 'Savings'),
        ('current', 'Current'),
        ('od', 'Overdraft'),
        ('cc', 'Cash Credit'),
        ('cash', 'Cash'),
    ]

    account_name = models.CharField(max_length=100)
    account_type = models.CharField(max_length=10, choices=ACCOUNT_TYPE_CHOICES)
    account_number = models.CharField(max_length=18, blank=True)
    bank_name = models.CharField(max_length=100, blank=True)
    ifsc_code = models.CharField(max_length=11, blank=True)
    branch_name = models.CharField(max_length=100, blank=True)
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='INR')
    opening_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    opening_balance_date = models.DateField(default=timezone.localdate)
    current_balance = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        editable=False,
        help_text="Derived from opening balance and cleared activity"
    )
    is_active = models.BooleanField(default=True)
    notes = models.CharField(max_length=500, blank=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ['account_name']
        indexes = [
            models.Index(fields=['entity', 'is_active']),
            models.Index(fields=['entity', 'account_type']),
        ]

    def __str__(self):
        return f"{self.account_name} ({self.get_account_type_display()})"

    @property
    def is_cash_account(self):
        return self.account_type == 'cash'

    @property
    def balance_status(self):
        if self.account_type in ('od', 'cc'):
            return 'overdrawn' if self.current_balance < 0 else 'available'
        return 'positive' if self.current_balance >= 0 else 'negative'

    @property
    def bank_details(self):
        return BankDetails(
            account_name=self.account_name,
            account_number=self.account_number,
            bank_name=self.bank_name,
            ifsc_code=self.ifsc_code,
        )

    def clean(self):
        super().clean()
        self.ifsc_code = (self.ifsc_code or '').upper()
        if self.is_cash_account:
            if self.account_number or self.bank_name or self.ifsc_code:
                raise ValidationError('Cash accounts cannot have bank details.')
        else:
            self.bank_details.validate()


class Transaction(EntityMixin, TimestampMixin):
    """
    A ledger line: money in or out of an account outside invoice settlement.

    total_amount:
        income:        amount + GST - TDS
        expense:       amount + GST
        loan, refund:  amount
    """
    TRANSACTION_TYPE_CHOICES = [
        ('income', 'Income'),
        ('expense', 'Expense'),
        ('loan', 'Loan'),
        ('refund', 'Refund'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('cancelled', 'Cancelled'),
        ('reconciled', 'Reconciled'),
    ]

    # Statuses whose money has moved
    SETTLED_STATUSES = ('paid', 'reconciled')

    transaction_code = models.CharField(max_length=30, blank=True)
    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transactions'
    )
    transaction_date = models.DateField(default=timezone.localdate)
    transaction_type = models.CharField(max_length=10, choices=TRANSACTION_TYPE_CHOICES)
    category = models.CharField(max_length=100, blank=True)
    party_name = models.CharField(max_length=255)
    description = models.CharField(max_length=500, blank=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    cgst = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    sgst = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    igst = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tds_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='pending')
    import_batch = models.ForeignKey(
        'banking.ImportBatch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_transactions'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='updated_transactions'
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ['-transaction_date', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='transaction_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['entity', 'transaction_type', 'status']),
            models.Index(fields=['entity', 'transaction_date']),
        ]

    def __str__(self):
        return f"{self.transaction_code or self.pk} {self.transaction_type} {self.total_amount}"

    @property
    def gst_total(self):
        return (self.cgst or 0) + (self.sgst or 0) + (self.igst or 0)

    @property
    def is_settled(self):
        return self.status in self.SETTLED_STATUSES

    @property
    def balance_effect(self):
        """Signed change this transaction makes to its account once settled."""
        if self.transaction_type == 'income':
            return self.total_amount
        return -self.total_amount

    def calculate_total(self):
        if self.transaction_type == 'income':
            self.total_amount = self.amount + self.gst_total - (self.tds_amount or 0)
        elif self.transaction_type == 'expense':
            self.total_amount = self.amount + self.gst_total
        else:
            self.total_amount = self.amount
        return self.total_amount

    def clean(self):
        super().clean()
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({'amount': 'Amount must be greater than zero.'})
        for name in ('cgst', 'sgst', 'igst', 'tds_amount'):
            if (getattr(self, name) or 0) < 0:
                raise ValidationError({name: f'{name} cannot be negative.'})
        if self.bank_account_id and self.bank_account.entity_id != self.entity_id:
            raise ValidationError({'bank_account': 'Bank account belongs to a different entity.'})

    def save(self, *args, **kwargs):
        self.calculate_total()
        super().save(*args, **kwargs)


class ImportBatch(TimestampMixin):
    """
    A parsed CSV upload held until the user commits it.

    The token is the reference handed back by the preview step. Committing
    the same token twice returns the stored result instead of importing
    the rows again.
    """
    STATUS_CHOICES = [
        ('staged', 'Staged'),
        ('committed', 'Committed'),
    ]

    token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    file_name = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='staged')
    rows = models.JSONField(default=list, help_text="Valid rows as parsed from the file")
    errors = models.JSONField(default=list, help_text="Rejected rows with reasons")
    total_rows = models.PositiveIntegerField(default=0)
    result = models.JSONField(default=dict, blank=True)
    committed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='import_batches'
    )

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'import batches'

    def __str__(self):
        return f"Import {self.token} ({self.status})"

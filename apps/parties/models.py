# apps/parties/models.py
"""
Party models: the counterparties an entity invoices and pays.

Models:
- Customer: Buys from the entity; owes on sales invoices (receivables)
- Vendor: Sells to the entity; is owed on purchase invoices (payables)

`current_outstanding` is a cache of the party's open invoice balances. It is
only ever written by CreditExposureCalculator.refresh(), which recomputes it
from the invoices themselves.
"""
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from simple_history.models import HistoricalRecords

from shared.models import EntityMixin, TimestampMixin
from shared.values import Address, BankDetails


TERMS_CHOICES = [
    ('immediate', 'Immediate'),
    ('net_7', 'Net 7'),
    ('net_15', 'Net 15'),
    ('net_30', 'Net 30'),
    ('net_45', 'Net 45'),
    ('net_60', 'Net 60'),
    ('net_90', 'Net 90'),
    ('custom', 'Custom'),
]

TERMS_DAYS = {
    'immediate': 0,
    'net_7': 7,
    'net_15': 15,
    'net_30': 30,
    'net_45': 45,
    'net_60': 60,
    'net_90': 90,
}


def terms_to_days(terms, custom_days=None):
    """
    Number of days until payment is due for a terms code.

    'custom' uses the party's own day count; a missing count means 0.
    """
    if terms == 'custom':
        return custom_days or 0
    try:
        return TERMS_DAYS[terms]
    except KeyError:
        raise ValidationError(f"Unknown payment terms '{terms}'")


class PartyBase(EntityMixin, TimestampMixin):
    """Fields shared by customers and vendors."""
    code = models.CharField(
        max_length=50,
        blank=True,
        help_text="Short code, unique within the entity when set"
    )
    name = models.CharField(max_length=255)
    contact_person = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    gstin = models.CharField(max_length=15, blank=True)
    pan = models.CharField(max_length=10, blank=True)

    address_street = models.CharField(max_length=255, blank=True)
    address_city = models.CharField(max_length=100, blank=True)
    address_state = models.CharField(max_length=100, blank=True)
    address_pincode = models.CharField(max_length=10, blank=True)
    address_country = models.CharField(max_length=100, default='India')

    credit_limit = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Maximum exposure allowed; 0 means no limit tracked"
    )
    current_outstanding = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0.00'),
        editable=False,
        help_text="Sum of amount due on open invoices (derived)"
    )
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)

    class Meta:
        abstract = True

    def __str__(self):
        if self.code:
            return f"{self.code} - {self.name}"
        return self.name

    @property
    def address(self):
        return Address.from_model(self)

    @address.setter
    def address(self, value):
        value.apply_to(self)

    @property
    def credit_utilization(self):
        from .credit import credit_utilization
        return credit_utilization(self.credit_limit, self.current_outstanding)

    @property
    def available_credit(self):
        return max(Decimal('0.00'), self.credit_limit - self.current_outstanding)

    @property
    def utilization_band(self):
        from .credit import utilization_band
        return utilization_band(self.credit_utilization)


class Customer(PartyBase):
    """A buyer. Sales invoices are raised against customers."""
    invoice_type = 'sales'
    payment_type = 'received'

    credit_terms = models.CharField(
        max_length=20,
        choices=TERMS_CHOICES,
        default='net_30'
    )
    custom_credit_days = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MaxValueValidator(365)],
        help_text="Days allowed when credit_terms is 'custom'"
    )

    history = HistoricalRecords()

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['entity', 'code'],
                condition=~models.Q(code=''),
                name='unique_customer_code_per_entity',
            ),
        ]
        indexes = [
            models.Index(fields=['entity', 'is_active']),
        ]

    @property
    def credit_days(self):
        return terms_to_days(self.credit_terms, self.custom_credit_days)


class Vendor(PartyBase):
    """A supplier. Purchase invoices are recorded against vendors."""
    invoice_type = 'purchase'
    payment_type = 'made'

    payment_terms = models.CharField(
        max_length=20,
        choices=TERMS_CHOICES,
        default='net_30'
    )
    custom_payment_days = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MaxValueValidator(365)],
        help_text="Days allowed when payment_terms is 'custom'"
    )

    bank_account_name = models.CharField(max_length=255, blank=True)
    bank_account_number = models.CharField(max_length=18, blank=True)
    bank_bank_name = models.CharField(max_length=255, blank=True)
    bank_ifsc_code = models.CharField(max_length=11, blank=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['entity', 'code'],
                condition=~models.Q(code=''),
                name='unique_vendor_code_per_entity',
            ),
        ]
        indexes = [
            models.Index(fields=['entity', 'is_active']),
        ]

    @property
    def credit_days(self):
        return terms_to_days(self.payment_terms, self.custom_payment_days)

    @property
    def bank_details(self):
        return BankDetails.from_model(self)

    @bank_details.setter
    def bank_details(self, value):
        value.apply_to(self)

    def clean(self):
        super().clean()
        details = self.bank_details
        if not details.is_empty():
            details.validate()

# apps/entities/models.py
"""
Entity models for the multi-entity ledger.

Models:
- Entity: A business (company, firm, individual) whose books are kept
- EntitySequence: Sequential document numbers per entity, type and period
"""
from django.conf import settings
from django.db import models, transaction

from shared.values import Address


class EntityQuerySet(models.QuerySet):

    def for_user(self, user):
        if user is None or not user.is_authenticated:
            return self.none()
        if user.is_superuser:
            return self.filter(is_active=True)
        return self.filter(is_active=True, members=user)


class Entity(models.Model):
    """
    A business whose receivables, payables and bank accounts are tracked.

    Every invoice, payment, party and bank account belongs to exactly one
    entity. Users act on an entity only if they are listed in `members`.
    """
    ENTITY_TYPE_CHOICES = [
        ('company', 'Company'),
        ('individual', 'Individual'),
        ('ngo', 'NGO'),
        ('llp', 'LLP'),
        ('partnership', 'Partnership'),
    ]

    name = models.CharField(max_length=255, help_text="Legal or trading name")
    entity_type = models.CharField(
        max_length=20,
        choices=ENTITY_TYPE_CHOICES,
        default='company'
    )
    pan = models.CharField(max_length=10, blank=True, help_text="PAN")
    gstin = models.CharField(max_length=15, blank=True, help_text="GSTIN")
    base_currency = models.CharField(
        max_length=3,
        default='INR',
        help_text="Currency code (ISO 4217)"
    )
    is_active = models.BooleanField(default=True)
    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name='entities',
        help_text="Users allowed to act on this entity"
    )

    # Address
    address_street = models.CharField(max_length=255, blank=True)
    address_city = models.CharField(max_length=100, blank=True)
    address_state = models.CharField(max_length=100, blank=True)
    address_pincode = models.CharField(max_length=10, blank=True)
    address_country = models.CharField(max_length=100, default='India')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EntityQuerySet.as_manager()

    class Meta:
        verbose_name_plural = 'entities'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return self.name

    @property
    def address(self):
        return Address.from_model(self)

    @address.setter
    def address(self, value):
        value.apply_to(self)


class EntitySequence(models.Model):
    """
    Sequential numbers for invoices, payments and transactions per entity.

    A row is created lazily the first time a (type, period) pair is used, so
    numbering restarts each year (or month, for payments).

    Usage:
        number = get_next_sequence_number(entity, 'SI', '2026')  # 'SI-2026-0001'
    """
    SEQUENCE_TYPES = [
        ('SI', 'Sales Invoice'),
        ('PI', 'Purchase Invoice'),
        ('PR', 'Payment Received'),
        ('PM', 'Payment Made'),
        ('TX', 'Transaction'),
    ]

    FORMATS = {
        'SI': '{type}-{period}-{value:04d}',
        'PI': '{type}-{period}-{value:04d}',
        'PR': '{type}{period}{value:04d}',
        'PM': '{type}{period}{value:04d}',
        'TX': 'TRX-{period}-{value:04d}',
    }

    entity = models.ForeignKey(
        Entity,
        on_delete=models.CASCADE,
        related_name='sequences'
    )
    sequence_type = models.CharField(max_length=4, choices=SEQUENCE_TYPES)
    period = models.CharField(
        max_length=8,
        help_text="Numbering period, e.g. '2026' or '202610'"
    )
    next_value = models.PositiveIntegerField(default=1)

    class Meta:
        unique_together = [('entity', 'sequence_type', 'period')]

    def __str__(self):
        return f"{self.entity.name} - {self.sequence_type} {self.period}"


def get_next_sequence_number(entity, sequence_type, period):
    """
    Get the next sequential number for an entity, type and period.

    Args:
        entity: Entity instance
        sequence_type: One of 'SI', 'PI', 'PR', 'PM', 'TX'
        period: Period string ('2026' for invoices, '202610' for payments)

    Returns:
        str: Formatted number (e.g., 'SI-2026-0001', 'PR2026100001')
    """
    fmt = EntitySequence.FORMATS[sequence_type]
    with transaction.atomic():
        EntitySequence.objects.get_or_create(
            entity=entity, sequence_type=sequence_type, period=period
        )
        seq = EntitySequence.objects.select_for_update().get(
            entity=entity, sequence_type=sequence_type, period=period
        )
        number = fmt.format(type=sequence_type, period=period, value=seq.next_value)
        seq.next_value += 1
        seq.save(update_fields=['next_value'])
        return number

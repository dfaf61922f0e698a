# apps/payments/services.py
"""
Payment service for receipts from customers and payments to vendors.

PaymentService handles:
- Recording payments (validated, numbered, pending)
- Clearing and bouncing payments (bank balance follows)
- Cancelling payments that carry no allocations
- Querying unallocated payments, open invoices and mode-wise summaries

Allocation itself lives in AllocationEngine (allocation.py).
"""
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, F, Sum
from django.utils import timezone

from apps.banking.models import BankAccount
from apps.banking.services import BankingService
from apps.entities.models import get_next_sequence_number
from apps.invoicing.services import InvoicingService
from apps.parties.models import Customer, Vendor
from shared.exceptions import InvalidStateTransition, NotFound
from shared.money import to_decimal
from .models import Payment

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


class PaymentService:
    """
    Service for payment lifecycle operations.

    Usage:
        service = PaymentService(entity, user)

        payment = service.create_payment(
            payment_type='received',
            party=customer,
            amount=Decimal('10000.00'),
            payment_mode='neft',
            bank_account=account,
            reference_number='UTR123',
        )

        service.mark_cleared(payment.id)
        service.cancel_payment(other.id, reason='Duplicate entry')
    """

    SEQUENCE_TYPES = {
        'received': 'PR',
        'made': 'PM',
    }

    def __init__(self, entity, user=None):
        """
        Initialize payment service.

        Args:
            entity: Entity instance to scope operations
            user: User performing operations (for audit trail)
        """
        self.entity = entity
        self.user = user
        self.banking = BankingService(entity, user)

    # ===== CREATION =====

    @transaction.atomic
    def create_payment(
        self,
        payment_type,
        party,
        amount,
        payment_mode='neft',
        bank_account=None,
        payment_date=None,
        currency=None,
        reference_number='',
        cheque_number='',
        cheque_date=None,
        tds_deducted=0,
        status='pending',
        notes='',
    ):
        """
        Record a payment.

        Args:
            payment_type: 'received' (from a customer) or 'made' (to a vendor)
            party: Customer or Vendor of this entity
            amount: Payment amount, > 0
            payment_mode: cash, cheque, neft, rtgs, imps, upi, card, other
            bank_account: Required unless payment_mode is 'cash'
            status: 'pending' or 'cleared'

        Returns:
            Payment instance

        Raises:
            ValidationError: If validation fails
        """
        if payment_type not in self.SEQUENCE_TYPES:
            raise ValidationError({'payment_type': f"Invalid payment type '{payment_type}'."})
        expected = Customer if payment_type == 'received' else Vendor
        if not isinstance(party, expected):
            raise ValidationError({
                'party': f"Payments {payment_type} require a {expected.__name__.lower()}."
            })
        if party.entity_id != self.entity.pk:
            raise ValidationError({'party': 'Party does not belong to this entity.'})
        if bank_account is not None and bank_account.entity_id != self.entity.pk:
            raise ValidationError({'bank_account': 'Bank account does not belong to this entity.'})
        if status not in ('pending', 'cleared'):
            raise ValidationError({'status': "New payments must be 'pending' or 'cleared'."})

        amount = to_decimal(amount)
        if payment_date is None:
            payment_date = timezone.localdate()

        payment = Payment(
            entity=self.entity,
            payment_type=payment_type,
            customer=party if payment_type == 'received' else None,
            vendor=party if payment_type == 'made' else None,
            bank_account=bank_account,
            payment_date=payment_date,
            amount=amount,
            currency=currency or (bank_account.currency if bank_account else self.entity.base_currency),
            payment_mode=payment_mode,
            reference_number=reference_number,
            cheque_number=cheque_number,
            cheque_date=cheque_date,
            tds_deducted=tds_deducted or 0,
            status=status,
            notes=notes,
            recorded_by=self.user,
        )
        payment.full_clean(exclude=['entity', 'payment_number'], validate_constraints=False)

        payment.payment_number = get_next_sequence_number(
            self.entity,
            self.SEQUENCE_TYPES[payment_type],
            payment_date.strftime('%Y%m'),
        )
        payment.save()

        if payment.status == 'cleared':
            self.banking.recompute_balance(bank_account)
        logger.info(
            'Payment %s recorded: %s %s via %s',
            payment.payment_number, payment_type, amount, payment_mode,
        )
        return payment

    # ===== STATUS =====

    @transaction.atomic
    def mark_cleared(self, payment_id, expected_version=None):
        """The money has landed; the bank balance now includes it."""
        payment = self._get_payment_for_update(payment_id)
        payment.check_version(expected_version)
        if payment.status != 'pending':
            raise InvalidStateTransition(
                f"Only pending payments can be cleared; {payment.payment_number} is {payment.status}.",
                current_status=payment.status,
            )
        return self._set_status(payment, 'cleared')

    @transaction.atomic
    def mark_bounced(self, payment_id, expected_version=None):
        """
        The instrument failed (e.g. cheque returned).

        Allocations must be reversed first so invoices never count money
        that did not arrive.
        """
        payment = self._get_payment_for_update(payment_id)
        payment.check_version(expected_version)
        if payment.status not in ('pending', 'cleared'):
            raise InvalidStateTransition(
                f"Payment {payment.payment_number} is {payment.status} and cannot bounce.",
                current_status=payment.status,
            )
        self._assert_no_allocations(payment, 'bounced')
        return self._set_status(payment, 'bounced')

    @transaction.atomic
    def cancel_payment(self, payment_id, reason='', expected_version=None):
        """
        Cancel a payment. Only payments without allocations can be cancelled.

        Raises:
            InvalidStateTransition: Already cancelled or still allocated
        """
        payment = self._get_payment_for_update(payment_id)
        payment.check_version(expected_version)
        if payment.status == 'cancelled':
            raise InvalidStateTransition(
                f"Payment {payment.payment_number} is already cancelled.",
                current_status=payment.status,
            )
        self._assert_no_allocations(payment, 'cancelled')
        if reason:
            payment.notes = f"{payment.notes}\nCANCELLED: {reason}".strip()
        return self._set_status(payment, 'cancelled')

    # ===== QUERIES =====

    def get_open_invoices(self, party):
        """Open invoices this party's payments can settle, oldest first."""
        invoice_type = 'sales' if isinstance(party, Customer) else 'purchase'
        return InvoicingService(self.entity, self.user).get_open_invoices(invoice_type, party)

    def get_unallocated_payments(self, payment_type=None, party=None):
        qs = Payment.objects.for_entity(self.entity).filter(
            status__in=Payment.ALLOCATABLE_STATUSES,
            allocated_amount__lt=F('amount'),
        )
        if payment_type:
            qs = qs.filter(payment_type=payment_type)
        if party is not None:
            qs = qs.filter(**{'customer' if isinstance(party, Customer) else 'vendor': party})
        return qs.select_related('customer', 'vendor', 'bank_account').order_by('payment_date', 'pk')

    def get_payment_summary(self, payment_type=None, start_date=None, end_date=None):
        """
        Totals by payment mode, excluding cancelled and bounced payments.

        Returns:
            dict: {'total_amount', 'total_count', 'by_mode': [{'payment_mode', 'total', 'count'}]}
        """
        qs = Payment.objects.for_entity(self.entity).exclude(status__in=['cancelled', 'bounced'])
        if payment_type:
            qs = qs.filter(payment_type=payment_type)
        if start_date:
            qs = qs.filter(payment_date__gte=start_date)
        if end_date:
            qs = qs.filter(payment_date__lte=end_date)

        by_mode = list(
            qs.values('payment_mode')
            .annotate(total=Sum('amount'), count=Count('id'))
            .order_by('-total')
        )
        totals = qs.aggregate(total=Sum('amount'), count=Count('id'))
        return {
            'total_amount': totals['total'] or ZERO,
            'total_count': totals['count'],
            'by_mode': by_mode,
        }

    # ===== HELPERS =====

    def _get_payment_for_update(self, payment_id):
        try:
            return Payment.objects.select_for_update().get(id=payment_id, entity=self.entity)
        except Payment.DoesNotExist:
            raise NotFound(f"Payment {payment_id} not found", model='Payment', pk=payment_id)

    def _assert_no_allocations(self, payment, new_status):
        if payment.allocations.exists():
            raise InvalidStateTransition(
                f"Payment {payment.payment_number} has allocations. "
                f"Reverse them before marking it {new_status}.",
                current_status=payment.status,
            )

    def _set_status(self, payment, status):
        old_status = payment.status
        payment.status = status
        payment.refresh_reconciliation()
        payment.bump_version()
        payment.save()

        if payment.bank_account_id and 'cleared' in (old_status, status):
            account = BankAccount.objects.select_for_update().get(pk=payment.bank_account_id)
            self.banking.recompute_balance(account)
        logger.info('Payment %s: %s -> %s', payment.payment_number, old_status, status)
        return payment

# apps/payments/allocation.py
"""
Allocation of payments to invoices.

AllocationEngine is the only code that moves money between payments and
invoices. Every call runs in one database transaction with the payment and
the affected invoices locked (payment first, then invoices by primary key),
so a batch is applied completely or not at all and concurrent calls on the
same rows are serialized. Callers that read rows earlier may also pass the
versions they saw; a mismatch raises ConcurrencyConflict.

After every change the engine re-derives, for each touched invoice,
amount_due, status and aging bucket, then the party's outstanding balance.
Amounts are compared and summed as Money in the payment's currency, so an
invoice in another currency can never be settled by it.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.invoicing.models import Invoice
from apps.invoicing.status import InvoiceStatusMachine, OPEN_STATUSES
from apps.parties.credit import CreditExposureCalculator
from shared.exceptions import ConservationViolation, InvalidStateTransition, NotFound
from shared.money import Money, to_decimal
from .models import Payment, PaymentAllocation

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


@dataclass(frozen=True)
class AllocationRequest:
    invoice_id: int
    amount: Decimal


@dataclass(frozen=True)
class InvoiceState:
    invoice_id: int
    invoice_number: str
    amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    status: str
    aging_bucket: str
    version: int

    @classmethod
    def from_invoice(cls, invoice, amount):
        return cls(
            invoice_id=invoice.pk,
            invoice_number=invoice.invoice_number,
            amount=amount,
            amount_paid=invoice.amount_paid,
            amount_due=invoice.amount_due,
            status=invoice.status,
            aging_bucket=invoice.aging_bucket,
            version=invoice.version,
        )


@dataclass(frozen=True)
class AllocationResult:
    payment_id: int
    payment_number: str
    payment_amount: Decimal
    allocated_amount: Decimal
    unallocated_amount: Decimal
    is_reconciled: bool
    version: int
    invoices: tuple

    def as_dict(self):
        return {
            'payment_id': self.payment_id,
            'payment_number': self.payment_number,
            'payment_amount': self.payment_amount,
            'allocated_amount': self.allocated_amount,
            'unallocated_amount': self.unallocated_amount,
            'is_reconciled': self.is_reconciled,
            'version': self.version,
            'invoices': [
                {
                    'invoice_id': state.invoice_id,
                    'invoice_number': state.invoice_number,
                    'amount': state.amount,
                    'amount_paid': state.amount_paid,
                    'amount_due': state.amount_due,
                    'status': state.status,
                    'aging_bucket': state.aging_bucket,
                    'version': state.version,
                }
                for state in self.invoices
            ],
        }


@dataclass(frozen=True)
class ProposedAllocation:
    invoice_id: int
    invoice_number: str
    due_date: object
    amount_due: Decimal
    proposed_amount: Decimal


class AllocationEngine:
    """
    Applies and reverses payment allocations.

    Usage:
        engine = AllocationEngine(entity, user)

        result = engine.allocate(
            payment_id=payment.id,
            allocations=[
                {'invoice_id': inv1.id, 'amount': Decimal('4000.00')},
                {'invoice_id': inv2.id, 'amount': Decimal('6000.00')},
            ],
        )

        engine.deallocate(payment.id, inv1.id)            # reverse all of it
        engine.propose(payment.id)                        # suggested split, no writes
    """

    def __init__(self, entity, user=None):
        self.entity = entity
        self.user = user
        self.credit = CreditExposureCalculator()

    # ===== ALLOCATE =====

    def allocate(self, payment_id, allocations, payment_version=None, invoice_versions=None, as_of=None):
        """
        Apply a batch of allocations from one payment.

        Args:
            payment_id: ID of the payment
            allocations: List of {'invoice_id': int, 'amount': Decimal}
            payment_version: Payment version the caller last read (optional)
            invoice_versions: {invoice_id: version} the caller last read (optional)
            as_of: Date for status/aging recompute (defaults to today)

        Returns:
            AllocationResult

        Raises:
            ValidationError: Malformed batch or incompatible payment/invoice
            NotFound: Payment or invoice does not exist
            InvalidStateTransition: Payment or invoice status forbids allocation
            ConservationViolation: Over-allocating the payment or an invoice
            ConcurrencyConflict: A supplied version is stale
        """
        requests = self._parse_requests(allocations)
        invoice_versions = {int(k): v for k, v in (invoice_versions or {}).items()}
        if as_of is None:
            as_of = timezone.localdate()

        with transaction.atomic():
            payment = self._lock_payment(payment_id)
            payment.check_version(payment_version)
            self._assert_payment_allocatable(payment)

            invoices = self._lock_invoices([r.invoice_id for r in requests])
            dues = {}
            for invoice in invoices.values():
                invoice.check_version(invoice_versions.get(invoice.pk))
                self._assert_compatible(payment, invoice)
                dues[invoice.pk] = self._amount_due(payment, invoice)
                InvoiceStatusMachine.assert_allocatable(invoice)

            currency = payment.currency
            amounts = {r.invoice_id: Money(r.amount, currency) for r in requests}
            payment_total = Money(payment.amount, currency)
            already_allocated = self._allocated_total(payment)
            requested_total = Money.sum(amounts.values(), currency)
            overshoot = already_allocated + requested_total - payment_total
            if overshoot.is_positive():
                raise self._rejected(ConservationViolation(
                    f"Payment {payment.payment_number} has {(payment_total - already_allocated).amount} "
                    f"unallocated; {requested_total.amount} requested (over by {overshoot.amount}).",
                    overshoot=overshoot.amount,
                ))

            for invoice_id, amount in amounts.items():
                due = dues[invoice_id]
                if amount > due:
                    raise self._rejected(ConservationViolation(
                        f"Invoice {invoices[invoice_id].invoice_number} has {due.amount} due; "
                        f"{amount.amount} requested (over by {(amount - due).amount}).",
                        overshoot=(amount - due).amount,
                    ))

            states = []
            for invoice_id, amount in amounts.items():
                invoice = invoices[invoice_id]
                invoice.amount_paid = (Money(invoice.amount_paid, currency) + amount).amount
                self._save_invoice(invoice, as_of)
                self._add_to_link(payment, invoice, amount.amount, as_of)
                states.append(InvoiceState.from_invoice(invoice, amount.amount))

            payment.allocated_amount = (already_allocated + requested_total).amount
            self._save_payment(payment, as_of)
            self.credit.refresh(payment.party)

        logger.info(
            'Allocated %s from payment %s across %s invoice(s)',
            requested_total, payment.payment_number, len(requests),
        )
        return self._result(payment, states)

    # ===== DEALLOCATE =====

    def deallocate(self, payment_id, invoice_id, amount=None, payment_version=None,
                   invoice_version=None, as_of=None):
        """
        Reverse all or part of an allocation.

        Args:
            payment_id: ID of the payment
            invoice_id: ID of the invoice
            amount: Amount to reverse (defaults to the whole allocation)

        Returns:
            AllocationResult

        Raises:
            NotFound: Payment, invoice or allocation does not exist
            ConservationViolation: Reversing more than was allocated
        """
        if amount is not None:
            amount = to_decimal(amount)
            if amount <= 0:
                raise ValidationError({'amount': 'Amount to reverse must be greater than zero.'})
        if as_of is None:
            as_of = timezone.localdate()

        with transaction.atomic():
            payment = self._lock_payment(payment_id)
            payment.check_version(payment_version)
            invoice_id = int(invoice_id)
            invoice = self._lock_invoices([invoice_id])[invoice_id]
            invoice.check_version(invoice_version)

            link = PaymentAllocation.objects.select_for_update().filter(
                payment=payment, invoice=invoice,
            ).first()
            if link is None:
                raise NotFound(
                    f"Payment {payment.payment_number} is not allocated to invoice {invoice.invoice_number}",
                    model='PaymentAllocation',
                )
            currency = payment.currency
            allocated = Money(link.allocated_amount, currency)
            reverse = allocated if amount is None else Money(amount, currency)
            if reverse > allocated:
                raise self._rejected(ConservationViolation(
                    f"Only {allocated.amount} is allocated to invoice {invoice.invoice_number}; "
                    f"cannot reverse {reverse.amount}.",
                    overshoot=(reverse - allocated).amount,
                ))
            amount = reverse.amount

            paid = Money(invoice.amount_paid, invoice.currency) - reverse
            invoice.amount_paid = max(Money.zero(currency), paid).amount
            self._save_invoice(invoice, as_of)

            remaining = allocated - reverse
            link.allocated_amount = remaining.amount
            if remaining.is_zero():
                link.delete()
            else:
                link.save(update_fields=['allocated_amount', 'updated_at'])

            payment.allocated_amount = self._allocated_total(payment).amount
            self._save_payment(payment, as_of)
            self.credit.refresh(payment.party)

        logger.info(
            'Reversed %s of payment %s from invoice %s',
            amount, payment.payment_number, invoice.invoice_number,
        )
        return self._result(payment, [InvoiceState.from_invoice(invoice, -amount)])

    # ===== PROPOSE =====

    def propose(self, payment_id, invoice_ids=None, requested=None):
        """
        Suggest allocation amounts without writing anything.

        Each candidate gets min(remaining payment, invoice amount due,
        requested amount if given), walking invoices oldest due date first
        unless invoice_ids fixes the order.

        Args:
            payment_id: ID of the payment
            invoice_ids: Candidate invoice IDs (defaults to the party's open invoices)
            requested: {invoice_id: amount} the caller would like to apply

        Returns:
            list of ProposedAllocation
        """
        payment = self._get_payment(payment_id)
        currency = payment.currency
        zero = Money.zero(currency)
        requested = {int(k): Money(to_decimal(v), currency) for k, v in (requested or {}).items()}
        remaining = Money(payment.amount, currency) - self._allocated_total(payment)

        party_field = 'customer' if payment.payment_type == 'received' else 'vendor'
        qs = Invoice.objects.for_entity(self.entity).filter(
            invoice_type=payment.invoice_type,
            status__in=OPEN_STATUSES,
            amount_due__gt=0,
            currency=payment.currency,
            **{party_field: payment.party},
        )
        if invoice_ids is not None:
            by_id = {inv.pk: inv for inv in qs.filter(pk__in=invoice_ids)}
            candidates = [by_id[pk] for pk in invoice_ids if pk in by_id]
        else:
            candidates = list(qs.order_by('due_date', 'pk'))

        proposals = []
        for invoice in candidates:
            cap = min(max(remaining, zero), Money(invoice.amount_due, invoice.currency))
            if invoice.pk in requested:
                cap = min(cap, max(requested[invoice.pk], zero))
            remaining = remaining - cap
            proposals.append(ProposedAllocation(
                invoice_id=invoice.pk,
                invoice_number=invoice.invoice_number,
                due_date=invoice.due_date,
                amount_due=invoice.amount_due,
                proposed_amount=cap.amount,
            ))
        return proposals

    # ===== HELPERS =====

    def _parse_requests(self, allocations):
        if not allocations:
            raise ValidationError('At least one allocation is required.')
        requests = []
        seen = set()
        for index, item in enumerate(allocations, start=1):
            invoice_id = item.get('invoice_id')
            if invoice_id is None and item.get('invoice') is not None:
                invoice_id = getattr(item['invoice'], 'pk', item['invoice'])
            if invoice_id is None:
                raise ValidationError(f"Allocation {index}: invoice is required.")
            invoice_id = int(invoice_id)
            if invoice_id in seen:
                raise ValidationError(f"Allocation {index}: invoice {invoice_id} appears more than once.")
            seen.add(invoice_id)

            amount = to_decimal(item.get('amount'))
            if amount <= 0:
                raise ValidationError(f"Allocation {index}: amount must be greater than zero.")
            requests.append(AllocationRequest(invoice_id=invoice_id, amount=amount))
        return requests

    def _get_payment(self, payment_id):
        try:
            return Payment.objects.select_related('customer', 'vendor').get(
                id=payment_id, entity=self.entity,
            )
        except Payment.DoesNotExist:
            raise NotFound(f"Payment {payment_id} not found", model='Payment', pk=payment_id)

    def _lock_payment(self, payment_id):
        try:
            return Payment.objects.select_for_update().get(id=payment_id, entity=self.entity)
        except Payment.DoesNotExist:
            raise NotFound(f"Payment {payment_id} not found", model='Payment', pk=payment_id)

    def _lock_invoices(self, invoice_ids):
        invoices = {
            invoice.pk: invoice
            for invoice in Invoice.objects.select_for_update().filter(pk__in=invoice_ids).order_by('pk')
        }
        missing = [pk for pk in invoice_ids if pk not in invoices]
        if missing:
            raise NotFound(
                f"Invoice(s) not found: {', '.join(str(pk) for pk in missing)}",
                model='Invoice',
                pk=missing[0],
            )
        return invoices

    def _assert_payment_allocatable(self, payment):
        if payment.status not in Payment.ALLOCATABLE_STATUSES:
            raise self._rejected(InvalidStateTransition(
                f"Payment {payment.payment_number} is {payment.status}; it cannot be allocated.",
                current_status=payment.status,
            ))

    def _assert_compatible(self, payment, invoice):
        if invoice.entity_id != payment.entity_id:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} belongs to a different entity."
            )
        if invoice.invoice_type != payment.invoice_type:
            raise ValidationError(
                f"A payment {payment.payment_type} cannot settle {invoice.invoice_type} "
                f"invoice {invoice.invoice_number}."
            )
        if invoice.party_id != (payment.customer_id or payment.vendor_id):
            raise ValidationError(
                f"Invoice {invoice.invoice_number} is for a different party than payment "
                f"{payment.payment_number}."
            )

    def _amount_due(self, payment, invoice):
        """The invoice's amount due as Money in the payment's currency."""
        try:
            return Money.zero(payment.currency) + Money(invoice.amount_due, invoice.currency)
        except ValidationError:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} is in {invoice.currency}; "
                f"payment {payment.payment_number} is in {payment.currency}."
            )

    def _allocated_total(self, payment):
        total = payment.allocations.aggregate(total=Sum('allocated_amount'))['total']
        return Money(total or ZERO, payment.currency)

    def _add_to_link(self, payment, invoice, amount, as_of):
        link, created = PaymentAllocation.objects.select_for_update().get_or_create(
            payment=payment,
            invoice=invoice,
            defaults={
                'allocated_amount': amount,
                'allocation_date': as_of,
                'allocated_by': self.user,
            },
        )
        if not created:
            link.allocated_amount += amount
            link.save(update_fields=['allocated_amount', 'updated_at'])
        return link

    def _save_invoice(self, invoice, as_of):
        invoice.refresh_state(as_of)
        invoice.updated_by = self.user
        invoice.bump_version()
        invoice.save()

    def _save_payment(self, payment, as_of):
        payment.refresh_reconciliation(as_of)
        payment.bump_version()
        payment.save()

    def _result(self, payment, states):
        return AllocationResult(
            payment_id=payment.pk,
            payment_number=payment.payment_number,
            payment_amount=payment.amount,
            allocated_amount=payment.allocated_amount,
            unallocated_amount=payment.unallocated_amount,
            is_reconciled=payment.is_reconciled,
            version=payment.version,
            invoices=tuple(states),
        )

    def _rejected(self, exc):
        logger.warning('Allocation rejected for entity %s: %s', self.entity.pk, exc)
        return exc

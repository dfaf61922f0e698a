# apps/payments/tests/test_allocation.py
"""
Tests for AllocationEngine: allocate, deallocate, propose.
"""
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError

from apps.entities.models import Entity
from apps.entities.tests.base import LedgerTestCase
from apps.invoicing.models import Invoice
from apps.invoicing.services import InvoicingService
from apps.parties.models import Customer
from apps.payments.allocation import AllocationEngine
from apps.payments.models import Payment, PaymentAllocation
from apps.payments.services import PaymentService
from shared.exceptions import (
    ConcurrencyConflict,
    ConservationViolation,
    InvalidStateTransition,
    NotFound,
)


class AllocationTestCase(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.engine = AllocationEngine(self.entity, self.user)

    def make_taxed_invoice(self):
        """11,800.00: ten units at 1,000.00 with 18% tax."""
        return InvoicingService(self.entity, self.user).create_invoice(
            invoice_type='sales',
            party=self.customer,
            lines=[{'description': 'Consulting', 'quantity': 10, 'rate': '1000.00', 'tax_rate': 18}],
            invoice_date=self.today,
            due_date=self.today + timedelta(days=30),
            finalize=True,
        )

    def snapshot(self, invoice):
        invoice.refresh_from_db()
        return (invoice.amount_paid, invoice.amount_due, invoice.status, invoice.version)


class AllocateTest(AllocationTestCase):

    def test_partial_payment(self):
        invoice = self.make_taxed_invoice()
        payment = self.make_payment('5000.00')

        result = self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '5000.00'}])

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal('5000.00'))
        self.assertEqual(invoice.amount_due, Decimal('6800.00'))
        self.assertEqual(invoice.status, 'partially_paid')
        self.assertEqual(invoice.version, 2)
        self.assertEqual(result.allocated_amount, Decimal('5000.00'))
        self.assertEqual(result.unallocated_amount, Decimal('0.00'))
        self.assertEqual(result.invoices[0].amount_due, Decimal('6800.00'))

    def test_second_payment_settles_invoice(self):
        invoice = self.make_taxed_invoice()
        first = self.make_payment('5000.00')
        second = self.make_payment('6800.00')
        self.engine.allocate(first.id, [{'invoice_id': invoice.id, 'amount': '5000.00'}])
        self.engine.allocate(second.id, [{'invoice_id': invoice.id, 'amount': '6800.00'}])

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal('11800.00'))
        self.assertEqual(invoice.amount_due, Decimal('0.00'))
        self.assertEqual(invoice.status, 'paid')
        self.assertEqual(invoice.aging_bucket, '')
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.current_outstanding, Decimal('0.00'))

    def test_over_invoice_due_rejected(self):
        invoice = self.make_taxed_invoice()
        self.engine.allocate(self.make_payment('5000.00').id, [{'invoice_id': invoice.id, 'amount': '5000.00'}])
        payment = self.make_payment('7000.00')
        before = self.snapshot(invoice)

        with self.assertRaises(ConservationViolation) as ctx:
            self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '7000.00'}])

        self.assertEqual(ctx.exception.overshoot, Decimal('200.00'))
        self.assertEqual(self.snapshot(invoice), before)
        payment.refresh_from_db()
        self.assertEqual(payment.allocated_amount, Decimal('0.00'))
        self.assertEqual(payment.version, 1)

    def test_batch_is_all_or_nothing(self):
        first = self.make_invoice('8000.00')
        second = self.make_invoice('5000.00')
        payment = self.make_payment('10000.00')
        before = (self.snapshot(first), self.snapshot(second))

        with self.assertRaises(ConservationViolation):
            self.engine.allocate(payment.id, [
                {'invoice_id': first.id, 'amount': '4000.00'},
                {'invoice_id': second.id, 'amount': '6000.00'},
            ])

        self.assertEqual((self.snapshot(first), self.snapshot(second)), before)
        self.assertFalse(PaymentAllocation.objects.exists())
        payment.refresh_from_db()
        self.assertEqual(payment.allocated_amount, Decimal('0.00'))

    def test_split_across_invoices(self):
        first = self.make_invoice('4000.00')
        second = self.make_invoice('6000.00')
        payment = self.make_payment('10000.00')

        result = self.engine.allocate(payment.id, [
            {'invoice_id': first.id, 'amount': '4000.00'},
            {'invoice_id': second.id, 'amount': '6000.00'},
        ])

        self.assertEqual([state.status for state in result.invoices], ['paid', 'paid'])
        payment.refresh_from_db()
        self.assertEqual(payment.allocated_amount, Decimal('10000.00'))
        self.assertEqual(payment.unallocated_amount, Decimal('0.00'))
        self.assertEqual(payment.version, 2)
        # pending money is never reconciled
        self.assertFalse(payment.is_reconciled)

    def test_over_payment_amount_rejected(self):
        first = self.make_invoice('6000.00')
        second = self.make_invoice('6000.00')
        payment = self.make_payment('10000.00')
        self.engine.allocate(payment.id, [{'invoice_id': first.id, 'amount': '6000.00'}])

        with self.assertRaises(ConservationViolation) as ctx:
            self.engine.allocate(payment.id, [{'invoice_id': second.id, 'amount': '5000.00'}])
        self.assertEqual(ctx.exception.overshoot, Decimal('1000.00'))

    def test_repeat_allocation_accumulates_on_one_link(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '300.00'}])
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '200.00'}])

        link = PaymentAllocation.objects.get(payment=payment, invoice=invoice)
        self.assertEqual(link.allocated_amount, Decimal('500.00'))

    def test_cleared_and_fully_allocated_is_reconciled(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00', status='cleared')

        result = self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '1000.00'}])

        self.assertTrue(result.is_reconciled)
        payment.refresh_from_db()
        self.assertEqual(payment.reconciled_date, self.today)

    def test_overdue_invoice_stays_overdue_when_partly_paid(self):
        invoice = self.make_invoice('1000.00', due_in=-45)
        payment = self.make_payment('100.00')
        result = self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '100.00'}])
        self.assertEqual(result.invoices[0].status, 'overdue')
        self.assertEqual(result.invoices[0].aging_bucket, '31-60')

    def test_result_as_dict(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('600.00')
        data = self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': 600}]).as_dict()
        self.assertEqual(data['payment_id'], payment.id)
        self.assertEqual(data['unallocated_amount'], Decimal('0.00'))
        self.assertEqual(data['invoices'][0]['invoice_number'], invoice.invoice_number)
        self.assertEqual(data['invoices'][0]['amount_due'], Decimal('400.00'))


class AllocateRejectionTest(AllocationTestCase):

    def test_malformed_batches(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        batches = [
            [],
            [{'invoice_id': invoice.id, 'amount': '0'}],
            [{'invoice_id': invoice.id, 'amount': '-5'}],
            [{'amount': '5'}],
            [{'invoice_id': invoice.id, 'amount': '5'}, {'invoice_id': invoice.id, 'amount': '5'}],
        ]
        for batch in batches:
            with self.subTest(batch=batch):
                with self.assertRaises(ValidationError):
                    self.engine.allocate(payment.id, batch)
        self.assertFalse(PaymentAllocation.objects.exists())

    def test_missing_payment_or_invoice(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        with self.assertRaises(NotFound):
            self.engine.allocate(999999, [{'invoice_id': invoice.id, 'amount': '1'}])
        with self.assertRaises(NotFound):
            self.engine.allocate(payment.id, [{'invoice_id': 999999, 'amount': '1'}])

    def test_paid_invoice_rejected(self):
        invoice = self.make_invoice('100.00')
        self.engine.allocate(self.make_payment('100.00').id, [{'invoice_id': invoice.id, 'amount': '100.00'}])
        with self.assertRaises(InvalidStateTransition) as ctx:
            self.engine.allocate(self.make_payment('1.00').id, [{'invoice_id': invoice.id, 'amount': '1.00'}])
        self.assertEqual(ctx.exception.current_status, 'paid')

    def test_cancelled_invoice_rejected(self):
        invoice = self.make_invoice('100.00')
        InvoicingService(self.entity, self.user).cancel(invoice.id)
        with self.assertRaises(InvalidStateTransition):
            self.engine.allocate(self.make_payment('10.00').id, [{'invoice_id': invoice.id, 'amount': '10.00'}])

    def test_cancelled_payment_rejected(self):
        invoice = self.make_invoice('100.00')
        payment = self.make_payment('10.00')
        PaymentService(self.entity, self.user).cancel_payment(payment.id)
        with self.assertRaises(InvalidStateTransition) as ctx:
            self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '10.00'}])
        self.assertEqual(ctx.exception.current_status, 'cancelled')

    def test_type_mismatch(self):
        purchase = self.make_invoice('100.00', invoice_type='purchase')
        with self.assertRaises(ValidationError):
            self.engine.allocate(self.make_payment('10.00').id, [{'invoice_id': purchase.id, 'amount': '10.00'}])

    def test_party_mismatch(self):
        other_customer = Customer.objects.create(entity=self.entity, code='C002', name='Other Buyer')
        invoice = self.make_invoice('100.00', party=other_customer)
        with self.assertRaises(ValidationError):
            self.engine.allocate(self.make_payment('10.00').id, [{'invoice_id': invoice.id, 'amount': '10.00'}])

    def test_currency_mismatch(self):
        invoice = self.make_invoice('100.00', currency='USD')
        with self.assertRaises(ValidationError) as ctx:
            self.engine.allocate(self.make_payment('10.00').id, [{'invoice_id': invoice.id, 'amount': '10.00'}])
        self.assertIn('is in USD', str(ctx.exception))
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal('0.00'))

    def test_entity_mismatch(self):
        other = Entity.objects.create(name='Other Co')
        stranger = Customer.objects.create(entity=other, name='Stranger')
        foreign = InvoicingService(other, self.user).create_invoice(
            invoice_type='sales',
            party=stranger,
            lines=[{'quantity': 1, 'rate': '100.00'}],
            finalize=True,
        )
        payment = self.make_payment('10.00')
        with self.assertRaises(ValidationError):
            self.engine.allocate(payment.id, [{'invoice_id': foreign.id, 'amount': '10.00'}])
        foreign.refresh_from_db()
        self.assertEqual(foreign.amount_paid, Decimal('0.00'))

    def test_payment_from_other_entity_not_found(self):
        other = Entity.objects.create(name='Other Co')
        invoice = self.make_invoice('100.00')
        payment = self.make_payment('10.00')
        with self.assertRaises(NotFound):
            AllocationEngine(other, self.user).allocate(
                payment.id, [{'invoice_id': invoice.id, 'amount': '10.00'}],
            )


class AllocationConcurrencyTest(AllocationTestCase):

    def test_stale_payment_version(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '100.00'}], payment_version=1)

        with self.assertRaises(ConcurrencyConflict) as ctx:
            self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '100.00'}], payment_version=1)
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.expected, 1)
        self.assertEqual(ctx.exception.actual, 2)
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal('100.00'))

    def test_stale_invoice_version(self):
        invoice = self.make_invoice('1000.00')
        self.engine.allocate(self.make_payment('100.00').id, [{'invoice_id': invoice.id, 'amount': '100.00'}])
        payment = self.make_payment('100.00')

        with self.assertRaises(ConcurrencyConflict):
            self.engine.allocate(
                payment.id,
                [{'invoice_id': invoice.id, 'amount': '100.00'}],
                invoice_versions={str(invoice.id): 1},
            )
        self.assertFalse(payment.allocations.exists())

    def test_current_versions_accepted(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('100.00')
        result = self.engine.allocate(
            payment.id,
            [{'invoice_id': invoice.id, 'amount': '100.00'}],
            payment_version=1,
            invoice_versions={invoice.id: 1},
        )
        self.assertEqual(result.version, 2)
        self.assertEqual(result.invoices[0].version, 2)


class DeallocateTest(AllocationTestCase):

    def test_round_trip_restores_amounts(self):
        invoice = self.make_taxed_invoice()
        payment = self.make_payment('5000.00')
        before_status = invoice.status
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '5000.00'}])

        result = self.engine.deallocate(payment.id, invoice.id)

        invoice.refresh_from_db()
        payment.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal('0.00'))
        self.assertEqual(invoice.amount_due, Decimal('11800.00'))
        self.assertEqual(invoice.status, before_status)
        self.assertEqual(payment.allocated_amount, Decimal('0.00'))
        self.assertFalse(PaymentAllocation.objects.exists())
        self.assertEqual(result.invoices[0].amount, Decimal('-5000.00'))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.current_outstanding, Decimal('11800.00'))

    def test_partial_reversal(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '1000.00'}])

        self.engine.deallocate(payment.id, invoice.id, amount='400.00')

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_due, Decimal('400.00'))
        self.assertEqual(invoice.status, 'partially_paid')
        link = PaymentAllocation.objects.get(payment=payment, invoice=invoice)
        self.assertEqual(link.allocated_amount, Decimal('600.00'))

    def test_paid_invoice_reopens(self):
        invoice = self.make_invoice('1000.00', due_in=-10)
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '1000.00'}])

        result = self.engine.deallocate(payment.id, invoice.id)
        self.assertEqual(result.invoices[0].status, 'overdue')

    def test_reversing_more_than_allocated(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '300.00'}])
        with self.assertRaises(ConservationViolation) as ctx:
            self.engine.deallocate(payment.id, invoice.id, amount='301.00')
        self.assertEqual(ctx.exception.overshoot, Decimal('1.00'))

    def test_no_such_allocation(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        with self.assertRaises(NotFound):
            self.engine.deallocate(payment.id, invoice.id)

    def test_non_positive_amount(self):
        with self.assertRaises(ValidationError):
            self.engine.deallocate(1, 1, amount='0')

    def test_stale_version(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '300.00'}])
        with self.assertRaises(ConcurrencyConflict):
            self.engine.deallocate(payment.id, invoice.id, invoice_version=1)

    def test_conservation_after_sequence(self):
        first = self.make_invoice('700.00')
        second = self.make_invoice('900.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [
            {'invoice_id': first.id, 'amount': '700.00'},
            {'invoice_id': second.id, 'amount': '300.00'},
        ])
        self.engine.deallocate(payment.id, first.id, amount='200.00')
        self.engine.allocate(payment.id, [{'invoice_id': second.id, 'amount': '200.00'}])

        payment.refresh_from_db()
        links = PaymentAllocation.objects.filter(payment=payment)
        self.assertEqual(sum(link.allocated_amount for link in links), payment.allocated_amount)
        self.assertLessEqual(payment.allocated_amount, payment.amount)
        for invoice in Invoice.objects.filter(pk__in=[first.pk, second.pk]):
            self.assertEqual(invoice.amount_due, invoice.total_amount - invoice.amount_paid)
            self.assertGreaterEqual(invoice.amount_due, 0)


class ProposeTest(AllocationTestCase):

    def test_oldest_due_first(self):
        later = self.make_invoice('3000.00', due_in=20)
        older = self.make_invoice('2000.00', due_in=-5)
        payment = self.make_payment('4000.00')

        proposals = self.engine.propose(payment.id)

        self.assertEqual([p.invoice_id for p in proposals], [older.id, later.id])
        self.assertEqual([p.proposed_amount for p in proposals], [Decimal('2000.00'), Decimal('2000.00')])

    def test_explicit_order_and_requested_cap(self):
        first = self.make_invoice('3000.00')
        second = self.make_invoice('3000.00')
        payment = self.make_payment('5000.00')

        proposals = self.engine.propose(
            payment.id,
            invoice_ids=[second.id, first.id],
            requested={str(second.id): '1000.00'},
        )

        self.assertEqual([p.invoice_id for p in proposals], [second.id, first.id])
        self.assertEqual([p.proposed_amount for p in proposals], [Decimal('1000.00'), Decimal('3000.00')])

    def test_nothing_left_to_propose(self):
        invoice = self.make_invoice('1000.00')
        other = self.make_invoice('500.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '1000.00'}])

        proposals = self.engine.propose(payment.id)

        self.assertEqual([p.invoice_id for p in proposals], [other.id])
        self.assertEqual(proposals[0].proposed_amount, Decimal('0.00'))

    def test_propose_writes_nothing(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.propose(payment.id)
        self.assertFalse(PaymentAllocation.objects.exists())
        invoice.refresh_from_db()
        self.assertEqual(invoice.version, 1)
        self.assertEqual(Payment.objects.get(pk=payment.pk).version, 1)

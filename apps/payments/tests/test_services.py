# apps/payments/tests/test_services.py
"""
Tests for PaymentService: create_payment, status changes and queries.
"""
from decimal import Decimal

from django.core.exceptions import ValidationError

from apps.entities.tests.base import LedgerTestCase
from apps.payments.allocation import AllocationEngine
from apps.payments.models import Payment
from apps.payments.services import PaymentService
from shared.exceptions import ConcurrencyConflict, InvalidStateTransition, NotFound


class PaymentBaseTestCase(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.svc = PaymentService(self.entity, self.user)
        self.engine = AllocationEngine(self.entity, self.user)

    def balance(self):
        self.bank_account.refresh_from_db()
        return self.bank_account.current_balance


class CreatePaymentTest(PaymentBaseTestCase):

    def test_create_received(self):
        payment = self.make_payment('10000.00', reference_number='UTR123')
        self.assertEqual(payment.status, 'pending')
        self.assertEqual(payment.customer, self.customer)
        self.assertIsNone(payment.vendor)
        self.assertEqual(payment.currency, 'INR')
        self.assertEqual(payment.payment_number, f"PR{self.today.strftime('%Y%m')}0001")
        self.assertEqual(payment.recorded_by, self.user)

    def test_create_made(self):
        payment = self.make_payment('2500.00', payment_type='made')
        self.assertEqual(payment.vendor, self.vendor)
        self.assertEqual(payment.invoice_type, 'purchase')
        self.assertTrue(payment.payment_number.startswith('PM'))

    def test_pending_payment_leaves_balance(self):
        self.make_payment('10000.00')
        self.assertEqual(self.balance(), Decimal('0.00'))

    def test_cleared_payment_moves_balance(self):
        self.make_payment('10000.00', status='cleared')
        self.make_payment('2500.00', payment_type='made', status='cleared')
        self.assertEqual(self.balance(), Decimal('7500.00'))

    def test_cash_needs_no_bank_account(self):
        payment = self.make_payment('500.00', payment_mode='cash', bank_account=None)
        self.assertIsNone(payment.bank_account)

    def test_non_cash_needs_bank_account(self):
        with self.assertRaises(ValidationError):
            self.make_payment('500.00', payment_mode='upi', bank_account=None)

    def test_invalid_amounts(self):
        for amount in ('0', '-10'):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    self.make_payment(amount)
        self.assertFalse(Payment.objects.exists())

    def test_party_must_match_type(self):
        with self.assertRaises(ValidationError):
            self.svc.create_payment(payment_type='received', party=self.vendor, amount='10.00',
                                    bank_account=self.bank_account)

    def test_new_payment_status_restricted(self):
        with self.assertRaises(ValidationError):
            self.make_payment('10.00', status='bounced')


class PaymentStatusTest(PaymentBaseTestCase):

    def test_clear(self):
        payment = self.make_payment('10000.00')
        payment = self.svc.mark_cleared(payment.id, expected_version=1)
        self.assertEqual(payment.status, 'cleared')
        self.assertEqual(payment.version, 2)
        self.assertEqual(self.balance(), Decimal('10000.00'))

    def test_clear_only_pending(self):
        payment = self.make_payment('10.00', status='cleared')
        with self.assertRaises(InvalidStateTransition):
            self.svc.mark_cleared(payment.id)

    def test_clear_reconciles_fully_allocated(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '1000.00'}])
        payment = self.svc.mark_cleared(payment.id)
        self.assertTrue(payment.is_reconciled)
        self.assertIsNotNone(payment.reconciled_date)

    def test_bounce_reverses_balance(self):
        payment = self.make_payment('10000.00', status='cleared')
        self.svc.mark_bounced(payment.id)
        self.assertEqual(self.balance(), Decimal('0.00'))

    def test_bounce_requires_no_allocations(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '500.00'}])
        with self.assertRaises(InvalidStateTransition):
            self.svc.mark_bounced(payment.id)

    def test_cancel(self):
        payment = self.make_payment('100.00')
        payment = self.svc.cancel_payment(payment.id, reason='Duplicate entry')
        self.assertEqual(payment.status, 'cancelled')
        self.assertIn('CANCELLED: Duplicate entry', payment.notes)
        with self.assertRaises(InvalidStateTransition):
            self.svc.cancel_payment(payment.id)

    def test_cancel_after_deallocation(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('1000.00')
        self.engine.allocate(payment.id, [{'invoice_id': invoice.id, 'amount': '500.00'}])
        with self.assertRaises(InvalidStateTransition):
            self.svc.cancel_payment(payment.id)
        self.engine.deallocate(payment.id, invoice.id)
        self.assertEqual(self.svc.cancel_payment(payment.id).status, 'cancelled')

    def test_stale_version(self):
        payment = self.make_payment('100.00')
        self.svc.mark_cleared(payment.id)
        with self.assertRaises(ConcurrencyConflict):
            self.svc.cancel_payment(payment.id, expected_version=1)

    def test_unknown_payment(self):
        with self.assertRaises(NotFound):
            self.svc.mark_cleared(999999)


class PaymentQueryTest(PaymentBaseTestCase):

    def test_unallocated_payments(self):
        invoice = self.make_invoice('1000.00')
        full = self.make_payment('1000.00')
        partial = self.make_payment('800.00')
        cancelled = self.make_payment('50.00')
        self.engine.allocate(full.id, [{'invoice_id': invoice.id, 'amount': '1000.00'}])
        self.svc.cancel_payment(cancelled.id)
        made = self.make_payment('300.00', payment_type='made')

        self.assertEqual(list(self.svc.get_unallocated_payments('received')), [partial])
        self.assertEqual(list(self.svc.get_unallocated_payments(party=self.vendor)), [made])

    def test_open_invoices_for_party(self):
        sales = self.make_invoice('100.00')
        purchase = self.make_invoice('200.00', invoice_type='purchase')
        self.assertEqual(list(self.svc.get_open_invoices(self.customer)), [sales])
        self.assertEqual(list(self.svc.get_open_invoices(self.vendor)), [purchase])

    def test_summary_by_mode(self):
        self.make_payment('1000.00')
        self.make_payment('500.00')
        self.make_payment('250.00', payment_mode='cash', bank_account=None)
        bounced = self.make_payment('999.00')
        self.svc.mark_bounced(bounced.id)

        summary = self.svc.get_payment_summary(payment_type='received')

        self.assertEqual(summary['total_amount'], Decimal('1750.00'))
        self.assertEqual(summary['total_count'], 3)
        self.assertEqual(summary['by_mode'][0]['payment_mode'], 'neft')
        self.assertEqual(summary['by_mode'][0]['total'], Decimal('1500.00'))

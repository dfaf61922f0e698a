# apps/parties/tests.py
"""
Tests for Customer and Vendor models and credit exposure.
"""
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import SimpleTestCase

from apps.entities.tests.base import LedgerTestCase
from apps.invoicing.services import InvoicingService
from apps.parties.credit import CreditExposureCalculator, credit_utilization, utilization_band
from apps.parties.models import Customer, Vendor, terms_to_days
from apps.payments.allocation import AllocationEngine


class TermsTest(SimpleTestCase):

    def test_standard_terms(self):
        self.assertEqual(terms_to_days('immediate'), 0)
        self.assertEqual(terms_to_days('net_45'), 45)

    def test_custom_terms(self):
        self.assertEqual(terms_to_days('custom', 21), 21)
        self.assertEqual(terms_to_days('custom'), 0)

    def test_unknown_terms(self):
        with self.assertRaises(ValidationError):
            terms_to_days('net_12')


class UtilizationTest(SimpleTestCase):

    def test_percentage(self):
        self.assertEqual(credit_utilization(Decimal('100000'), Decimal('50000')), Decimal('50.00'))
        self.assertEqual(credit_utilization(Decimal('3'), Decimal('1')), Decimal('33.33'))

    def test_not_capped(self):
        self.assertEqual(credit_utilization(Decimal('1000'), Decimal('1500')), Decimal('150.00'))

    def test_no_limit(self):
        self.assertEqual(credit_utilization(Decimal('0'), Decimal('5000')), Decimal('0.00'))

    def test_bands(self):
        cases = [
            ('0', 'ok'), ('49.99', 'ok'), ('50', 'caution'), ('74.99', 'caution'),
            ('75', 'warning'), ('90', 'critical'), ('150', 'critical'),
        ]
        for pct, band in cases:
            with self.subTest(pct=pct):
                self.assertEqual(utilization_band(Decimal(pct)), band)


class PartyModelTest(LedgerTestCase):

    def test_str(self):
        self.assertEqual(str(self.customer), 'C001 - Bharat Retail')
        self.assertEqual(str(Customer(name='No Code')), 'No Code')

    def test_credit_days(self):
        self.assertEqual(self.customer.credit_days, 30)
        self.vendor.payment_terms = 'custom'
        self.vendor.custom_payment_days = 10
        self.assertEqual(self.vendor.credit_days, 10)

    def test_code_unique_per_entity(self):
        with self.assertRaises(IntegrityError):
            Customer.objects.create(entity=self.entity, code='C001', name='Duplicate')

    def test_blank_codes_allowed_repeatedly(self):
        Vendor.objects.create(entity=self.entity, name='Walk-in A')
        Vendor.objects.create(entity=self.entity, name='Walk-in B')
        self.assertEqual(Vendor.objects.for_entity(self.entity).filter(code='').count(), 2)

    def test_vendor_bank_details_validated(self):
        self.vendor.bank_account_number = '12'
        with self.assertRaises(ValidationError):
            self.vendor.full_clean()

    def test_available_credit(self):
        self.customer.current_outstanding = Decimal('80000.00')
        self.assertEqual(self.customer.available_credit, Decimal('20000.00'))
        self.assertEqual(self.customer.utilization_band, 'warning')


class CreditExposureTest(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.calc = CreditExposureCalculator()

    def test_outstanding_and_utilization(self):
        self.make_invoice('20000.00')
        self.make_invoice('30000.00')

        exposure = self.calc.exposure(self.customer)

        self.assertEqual(exposure.current_outstanding, Decimal('50000.00'))
        self.assertEqual(exposure.credit_utilization, Decimal('50.00'))
        self.assertEqual(exposure.available_credit, Decimal('50000.00'))
        self.assertEqual(exposure.band, 'caution')
        self.assertEqual(exposure.open_invoice_count, 2)

    def test_cancelled_and_other_type_excluded(self):
        self.make_invoice('20000.00')
        cancelled = self.make_invoice('30000.00')
        InvoicingService(self.entity, self.user).cancel(cancelled.id)
        self.make_invoice('5000.00', invoice_type='purchase')

        self.assertEqual(self.calc.current_outstanding(self.customer), Decimal('20000.00'))
        self.assertEqual(self.calc.current_outstanding(self.vendor), Decimal('5000.00'))

    def test_other_currency_excluded(self):
        self.make_invoice('20000.00')
        self.make_invoice('700.00', currency='USD')

        exposure = self.calc.exposure(self.customer)

        self.assertEqual(exposure.current_outstanding, Decimal('20000.00'))
        self.assertEqual(exposure.open_invoice_count, 1)

    def test_payments_reduce_outstanding(self):
        invoice = self.make_invoice('20000.00')
        payment = self.make_payment('15000.00')
        AllocationEngine(self.entity, self.user).allocate(
            payment.id, [{'invoice_id': invoice.id, 'amount': '15000.00'}],
        )
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.current_outstanding, Decimal('5000.00'))
        self.assertEqual(self.calc.exposure(self.customer).credit_utilization, Decimal('5.00'))

    def test_refresh_repairs_stale_cache(self):
        self.make_invoice('1000.00')
        Customer.objects.filter(pk=self.customer.pk).update(current_outstanding=Decimal('1.00'))
        self.customer.refresh_from_db()

        self.assertEqual(self.calc.refresh(self.customer), Decimal('1000.00'))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.current_outstanding, Decimal('1000.00'))

    def test_as_dict(self):
        data = self.calc.exposure(self.vendor).as_dict()
        self.assertEqual(data['current_outstanding'], Decimal('0.00'))
        self.assertEqual(data['band'], 'ok')
        self.assertEqual(data['credit_utilization'], Decimal('0.00'))

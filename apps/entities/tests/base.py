# apps/entities/tests/base.py
"""
Shared fixtures for ledger tests.

One entity with a member user, a customer, a vendor and a current account.
Helpers create finalized invoices with a single zero-tax line so the total
equals the amount passed in.
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from apps.banking.models import BankAccount
from apps.entities.models import Entity
from apps.invoicing.services import InvoicingService
from apps.parties.models import Customer, Vendor
from apps.payments.services import PaymentService

User = get_user_model()


class LedgerTestCase(TestCase):
    """Base test case with one fully set up entity."""

    @classmethod
    def setUpTestData(cls):
        cls.entity = Entity.objects.create(name='Acme Traders', gstin='27AAACA1234A1Z5')
        cls.user = User.objects.create_user(username='ledgeruser', password='pass')
        cls.entity.members.add(cls.user)

        cls.customer = Customer.objects.create(
            entity=cls.entity,
            code='C001',
            name='Bharat Retail',
            credit_limit=Decimal('100000.00'),
            credit_terms='net_30',
        )
        cls.vendor = Vendor.objects.create(
            entity=cls.entity,
            code='V001',
            name='Deccan Supplies',
            payment_terms='net_15',
        )
        cls.bank_account = BankAccount.objects.create(
            entity=cls.entity,
            account_name='HDFC Current',
            account_type='current',
            account_number='123456789012',
            bank_name='HDFC Bank',
            ifsc_code='HDFC0001234',
        )

    def setUp(self):
        self.today = timezone.localdate()

    def make_invoice(self, total, party=None, invoice_type='sales', due_in=30, finalize=True, **kwargs):
        """Invoice of `total` due `due_in` days from today (negative means past due)."""
        if party is None:
            party = self.customer if invoice_type == 'sales' else self.vendor
        due_date = self.today + timedelta(days=due_in)
        invoice_date = min(self.today, due_date)
        return InvoicingService(self.entity, self.user).create_invoice(
            invoice_type=invoice_type,
            party=party,
            lines=[{'description': 'Services', 'quantity': 1, 'rate': str(total), 'tax_rate': 0}],
            invoice_date=invoice_date,
            due_date=due_date,
            finalize=finalize,
            **kwargs
        )

    def make_payment(self, amount, party=None, payment_type='received', **kwargs):
        if party is None:
            party = self.customer if payment_type == 'received' else self.vendor
        kwargs.setdefault('bank_account', self.bank_account)
        return PaymentService(self.entity, self.user).create_payment(
            payment_type=payment_type,
            party=party,
            amount=Decimal(str(amount)),
            **kwargs
        )

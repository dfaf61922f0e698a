# apps/api/tests/test_dashboard.py
"""
API tests for dashboard, party exposure and health endpoints.
"""
from decimal import Decimal

from rest_framework import status
from rest_framework.test import APIClient

from apps.banking.services import BankingService
from apps.entities.models import Entity
from .base import ApiTestCase


class DashboardApiTest(ApiTestCase):

    def test_stats(self):
        BankingService(self.entity, self.user).create_transaction(
            transaction_type='income', party_name='X', amount=Decimal('500.00'),
            bank_account=self.bank_account, status='paid',
        )
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['balances']['INR']['total'], Decimal('500.00'))
        self.assertEqual(data['transactions']['income'], Decimal('500.00'))

    def test_ar_ap_summary(self):
        self.make_invoice('1000.00', due_in=-10)
        self.make_invoice('400.00', invoice_type='purchase')
        response = self.client.get('/api/v1/dashboard/ar-ap-summary/', {'top_n': 3})
        data = response.data['data']
        self.assertEqual(data['receivables']['overdue'], Decimal('1000.00'))
        self.assertEqual(data['receivables']['top_parties'][0]['name'], 'Bharat Retail')
        self.assertEqual(data['payables']['total'], Decimal('400.00'))

    def test_entity_summary_without_selection_covers_all_entities(self):
        branch = Entity.objects.create(name='Acme Exports')
        branch.members.add(self.user)
        client = APIClient()
        client.force_authenticate(user=self.user)

        response = client.get('/api/v1/dashboard/entity-summary/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({row['name'] for row in response.data['data']}, {'Acme Traders', 'Acme Exports'})

    def test_monthly_trends(self):
        BankingService(self.entity, self.user).create_transaction(
            transaction_type='expense', party_name='X', amount=Decimal('120.00'),
            bank_account=self.bank_account, status='paid',
        )
        response = self.client.get('/api/v1/dashboard/monthly-trends/', {'months': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        rows = response.data['data']
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[-1]['expense'], Decimal('120.00'))
        self.assertEqual(rows[-1]['net'], Decimal('-120.00'))

    def test_monthly_trends_rejects_bad_months(self):
        response = self.client.get('/api/v1/dashboard/monthly-trends/', {'months': 'six'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_bad_date_param(self):
        response = self.client.get('/api/v1/dashboard/stats/', {'start_date': '19-10-2026'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class PartyApiTest(ApiTestCase):

    def test_customer_exposure(self):
        self.make_invoice('20000.00')
        self.make_invoice('30000.00')
        response = self.client.get(f'/api/v1/customers/{self.customer.id}/exposure/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current_outstanding'], '50000.00')
        self.assertEqual(response.data['credit_utilization'], '50.00')
        self.assertEqual(response.data['band'], 'caution')

    def test_list_vendors(self):
        response = self.client.get('/api/v1/vendors/')
        self.assertEqual([row['name'] for row in response.data['data']], ['Deccan Supplies'])


class HealthApiTest(ApiTestCase):

    def test_health_needs_no_auth(self):
        response = APIClient().get('/api/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['database'], 'connected')

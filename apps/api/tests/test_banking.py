# apps/api/tests/test_banking.py
"""
API tests for bank accounts, transactions, bulk updates and CSV import.
"""
from decimal import Decimal

from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework import status

from apps.banking.models import Transaction
from apps.banking.services import BankingService
from .base import ApiTestCase

CSV = (
    'Date,Entity,Type,Amount,Party Name,Bank Account,Status\n'
    '2026-10-01,Acme Traders,income,1000,Bharat Retail,HDFC Current,paid\n'
    '2026-10-02,Acme Traders,expense,abc,Landlord,,\n'
)


class BankingApiTest(ApiTestCase):

    def txn(self, transaction_type, amount, status='pending'):
        return BankingService(self.entity, self.user).create_transaction(
            transaction_type=transaction_type,
            party_name='Counterparty',
            amount=Decimal(amount),
            bank_account=self.bank_account,
            status=status,
        )

    def test_list_accounts(self):
        response = self.client.get('/api/v1/bank-accounts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['account_name'], 'HDFC Current')

    def test_list_transactions_filtered(self):
        self.txn('income', '100.00')
        self.txn('expense', '50.00')
        response = self.client.get('/api/v1/transactions/', {'transaction_type': 'expense'})
        self.assertEqual(response.data['pagination']['totalItems'], 1)

    def test_bulk_update_reports_each_id(self):
        first = self.txn('income', '1000.00')
        second = self.txn('expense', '300.00')

        response = self.client.post(
            '/api/v1/transactions/bulk-update/',
            {'ids': [first.id, second.id, 999999], 'status': 'paid'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['data']['updated'], [first.id, second.id])
        self.assertEqual(response.data['data']['errors'], [{'id': 999999, 'error': 'Transaction not found'}])
        self.bank_account.refresh_from_db()
        self.assertEqual(self.bank_account.current_balance, Decimal('700.00'))

    def test_bulk_update_rejects_status(self):
        response = self.client.post(
            '/api/v1/transactions/bulk-update/', {'ids': [1], 'status': 'reconciled'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_import_preview_then_commit_twice(self):
        upload = SimpleUploadedFile('bank.csv', CSV.encode('utf-8'), content_type='text/csv')
        response = self.client.post('/api/v1/transactions/import/preview/', {'file': upload}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        report = response.data['data']
        self.assertEqual(report['valid_rows'], 1)
        self.assertEqual(report['invalid_rows'], 1)

        commit_url = '/api/v1/transactions/import/commit/'
        first = self.client.post(commit_url, {'temp_file_path': report['temp_file_path']}, format='json')
        second = self.client.post(commit_url, {'temp_file_path': report['temp_file_path']}, format='json')

        self.assertEqual(first.data['data'], second.data['data'])
        self.assertEqual(first.data['data']['imported'], 1)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_import_requires_csv(self):
        upload = SimpleUploadedFile('bank.xlsx', b'not csv')
        response = self.client.post('/api/v1/transactions/import/preview/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_commit_unknown_token(self):
        response = self.client.post(
            '/api/v1/transactions/import/commit/',
            {'temp_file_path': '00000000-0000-0000-0000-000000000000'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_import_rejects_non_utf8(self):
        content = CSV.encode('utf-8') + b'2026-10-03,Acme Traders,income,50,\xff\xfe,,\n'
        upload = SimpleUploadedFile('bank.csv', content, content_type='text/csv')
        response = self.client.post('/api/v1/transactions/import/preview/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'File is not valid UTF-8 CSV.')

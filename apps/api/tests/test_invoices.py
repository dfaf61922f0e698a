# apps/api/tests/test_invoices.py
"""
API tests for /api/v1/invoices/.
"""
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from rest_framework import status

from apps.invoicing.models import Invoice
from apps.payments.allocation import AllocationEngine
from .base import ApiTestCase

URL = '/api/v1/invoices/'


class InvoiceCreateApiTest(ApiTestCase):

    def payload(self, **overrides):
        data = {
            'invoice_type': 'sales',
            'customer': self.customer.id,
            'lines': [{'description': 'Consulting', 'quantity': '10', 'rate': '1000.00', 'tax_rate': '18'}],
            'finalize': True,
        }
        data.update(overrides)
        return data

    def test_create_computes_totals(self):
        response = self.client.post(URL, self.payload(total_amount='1.00'), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_amount'], '11800.00')
        self.assertEqual(response.data['amount_due'], '11800.00')
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['party_name'], 'Bharat Retail')
        self.assertEqual(len(response.data['lines']), 1)
        self.assertEqual(Invoice.objects.get().created_by, self.user)

    def test_party_must_match_type(self):
        response = self.client.post(
            URL, self.payload(customer=None, vendor=self.vendor.id), format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'ValidationError')
        self.assertIn('customer', response.data['details'])

    def test_invalid_line(self):
        response = self.client.post(
            URL, self.payload(lines=[{'description': 'X', 'quantity': '0', 'rate': '10'}]), format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'ValidationError')

    def test_unknown_customer(self):
        response = self.client.post(URL, self.payload(customer=999999), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'NotFound')


class InvoiceListApiTest(ApiTestCase):

    def test_paginated_list(self):
        for amount in ('100.00', '200.00', '300.00'):
            self.make_invoice(amount)

        response = self.client.get(URL, {'limit': 2})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 2)
        self.assertEqual(response.data['pagination'], {
            'currentPage': 1,
            'totalPages': 2,
            'totalItems': 3,
            'hasNext': True,
            'hasPrev': False,
        })

    def test_filter_by_status(self):
        self.make_invoice('100.00', due_in=-5)
        self.make_invoice('100.00', due_in=5)
        response = self.client.get(URL, {'status': 'overdue'})
        self.assertEqual(response.data['pagination']['totalItems'], 1)
        self.assertEqual(response.data['data'][0]['aging_bucket'], '1-30')

    def test_retrieve_with_allocations(self):
        invoice = self.make_invoice('1000.00')
        payment = self.make_payment('400.00')
        AllocationEngine(self.entity, self.user).allocate(
            payment.id, [{'invoice_id': invoice.id, 'amount': '400.00'}],
        )
        response = self.client.get(f'{URL}{invoice.id}/')
        self.assertEqual(response.data['amount_due'], '600.00')
        self.assertEqual(response.data['allocations'][0]['payment_number'], payment.payment_number)

    def test_read_ages_invoice_to_today(self):
        invoice = self.make_invoice('500.00', due_in=1)
        later = self.today + timedelta(days=10)
        version = invoice.version

        with mock.patch('django.utils.timezone.localdate', return_value=later):
            detail = self.client.get(f'{URL}{invoice.id}/')
            overdue = self.client.get(URL, {'status': 'overdue'})
            current = self.client.get(URL, {'aging_bucket': 'current'})

        self.assertEqual(detail.data['status'], 'overdue')
        self.assertEqual(detail.data['aging_bucket'], '1-30')
        self.assertEqual(detail.data['days_overdue'], 9)
        self.assertEqual(overdue.data['pagination']['totalItems'], 1)
        self.assertEqual(current.data['pagination']['totalItems'], 0)
        invoice.refresh_from_db()
        self.assertEqual(invoice.version, version)


class InvoiceLifecycleApiTest(ApiTestCase):

    def test_patch_recomputes(self):
        invoice = self.make_invoice('1000.00')
        response = self.client.patch(
            f'{URL}{invoice.id}/',
            {'version': 1, 'lines': [{'description': 'Revised', 'quantity': '1', 'rate': '500.00', 'tax_rate': '18'}]},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_amount'], '590.00')
        self.assertEqual(response.data['version'], 2)

    def test_patch_stale_version(self):
        invoice = self.make_invoice('1000.00')
        self.client.patch(f'{URL}{invoice.id}/', {'notes': 'first'}, format='json')

        response = self.client.patch(f'{URL}{invoice.id}/', {'notes': 'second', 'version': 1}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'ConcurrencyConflict')
        self.assertTrue(response.data['retryable'])
        self.assertEqual(response.data['current_version'], 2)

    def test_put_not_allowed(self):
        invoice = self.make_invoice('1000.00')
        response = self.client.put(f'{URL}{invoice.id}/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_finalize_and_cancel(self):
        invoice = self.make_invoice('1000.00', finalize=False)
        response = self.client.post(f'{URL}{invoice.id}/finalize/', {'version': 1}, format='json')
        self.assertEqual(response.data['status'], 'pending')

        response = self.client.post(f'{URL}{invoice.id}/cancel/', {'reason': 'Duplicate'}, format='json')
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(response.data['cancellation_reason'], 'Duplicate')

        response = self.client.post(f'{URL}{invoice.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'InvalidStateTransition')
        self.assertEqual(response.data['current_status'], 'cancelled')

    def test_refresh_statuses(self):
        self.make_invoice('1000.00', due_in=3)
        as_of = (self.today + timedelta(days=10)).isoformat()
        response = self.client.post(f'{URL}refresh-statuses/?date={as_of}')
        self.assertEqual(response.data, {'success': True, 'changed': 1})

    def test_aging_report(self):
        self.make_invoice('2000.00', due_in=-45)
        response = self.client.get(f'{URL}aging/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], Decimal('2000.00'))
        buckets = {row['bucket']: row['amount'] for row in response.data['buckets']}
        self.assertEqual(buckets['31-60'], Decimal('2000.00'))

    def test_aging_rejects_bad_type(self):
        response = self.client.get(f'{URL}aging/', {'invoice_type': 'other'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary_by_status(self):
        self.make_invoice('1000.00', due_in=-5)
        self.make_invoice('250.00')
        self.make_invoice('400.00', invoice_type='purchase')
        response = self.client.get(f'{URL}summary/', {'invoice_type': 'sales'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual([row['status'] for row in data['by_status']], ['overdue', 'pending'])
        self.assertEqual(data['overall']['total_invoices'], 2)
        self.assertEqual(data['overall']['total_due'], Decimal('1250.00'))

# apps/api/tests/test_entity_isolation.py
"""
Security tests for cross-entity data isolation.

A user acts on one entity at a time and only on entities they belong to.
Records of other entities must never be readable or writable.
"""
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.test import APIClient

from apps.entities.models import Entity
from apps.invoicing.services import InvoicingService
from apps.parties.models import Customer
from .base import ApiTestCase

User = get_user_model()


@pytest.mark.security
@pytest.mark.entity_isolation
class EntityIsolationTests(ApiTestCase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.other_entity = Entity.objects.create(name='Rival Traders')
        cls.other_user = User.objects.create_user(username='rivaluser', password='pass')
        cls.other_entity.members.add(cls.other_user)
        cls.other_customer = Customer.objects.create(
            entity=cls.other_entity, code='C001', name='Rival Customer', credit_limit=Decimal('5000.00'),
        )
        cls.other_invoice = InvoicingService(cls.other_entity, cls.other_user).create_invoice(
            invoice_type='sales',
            party=cls.other_customer,
            lines=[{'description': 'Goods', 'quantity': 1, 'rate': '900.00', 'tax_rate': 0}],
            finalize=True,
        )

    def test_non_member_entity_header_is_forbidden(self):
        self.client.credentials(HTTP_X_ENTITY_ID=str(self.other_entity.pk))
        response = self.client.get('/api/v1/invoices/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unknown_entity_header_is_forbidden(self):
        self.client.credentials(HTTP_X_ENTITY_ID='999999')
        response = self.client.get('/api/v1/invoices/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_other_entity_invoice_is_not_found(self):
        response = self.client.get(f'/api/v1/invoices/{self.other_invoice.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_other_entity_invoice_cannot_be_changed(self):
        response = self.client.post(f'/api/v1/invoices/{self.other_invoice.pk}/cancel/', format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.other_invoice.refresh_from_db()
        self.assertEqual(self.other_invoice.status, 'pending')

    def test_list_shows_only_selected_entity(self):
        self.make_invoice('100.00')
        response = self.client.get('/api/v1/invoices/')
        self.assertEqual(response.data['pagination']['totalItems'], 1)
        self.assertNotIn(self.other_invoice.pk, [row['id'] for row in response.data['data']])

    def test_other_entity_customer_exposure_is_not_found(self):
        response = self.client.get(f'/api/v1/customers/{self.other_customer.pk}/exposure/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unauthenticated_request_is_rejected(self):
        response = APIClient().get('/api/v1/invoices/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_multi_entity_user_must_select_entity(self):
        self.other_entity.members.add(self.user)
        client = APIClient()
        client.force_authenticate(user=self.user)

        response = client.get('/api/v1/invoices/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_dashboard_excludes_non_member_entities(self):
        response = self.client.get('/api/v1/dashboard/entity-summary/')
        self.assertEqual([row['name'] for row in response.data['data']], ['Acme Traders'])

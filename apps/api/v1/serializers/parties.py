# apps/api/v1/serializers/parties.py
"""
Serializers for Customer and Vendor models.

current_outstanding and the credit figures derived from it are read-only;
they are recomputed from invoices.
"""
from rest_framework import serializers

from apps.parties.models import Customer, Vendor
from .base import EntityModelSerializer

PARTY_FIELDS = [
    'id', 'entity', 'code', 'name', 'contact_person', 'email', 'phone',
    'gstin', 'pan',
    'address_street', 'address_city', 'address_state', 'address_pincode', 'address_country',
    'credit_limit', 'current_outstanding',
    'credit_utilization', 'available_credit', 'utilization_band',
    'is_active', 'notes', 'created_at', 'updated_at',
]


class CustomerSerializer(EntityModelSerializer):
    credit_days = serializers.IntegerField(read_only=True)
    credit_utilization = serializers.DecimalField(max_digits=8, decimal_places=2, read_only=True)
    available_credit = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    utilization_band = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = PARTY_FIELDS + ['credit_terms', 'custom_credit_days', 'credit_days']
        read_only_fields = ['current_outstanding']


class VendorSerializer(EntityModelSerializer):
    credit_days = serializers.IntegerField(read_only=True)
    credit_utilization = serializers.DecimalField(max_digits=8, decimal_places=2, read_only=True)
    available_credit = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    utilization_band = serializers.CharField(read_only=True)

    class Meta:
        model = Vendor
        fields = PARTY_FIELDS + [
            'payment_terms', 'custom_payment_days', 'credit_days',
            'bank_account_name', 'bank_account_number', 'bank_bank_name', 'bank_ifsc_code',
        ]
        read_only_fields = ['current_outstanding']


class CreditExposureSerializer(serializers.Serializer):
    credit_limit = serializers.DecimalField(max_digits=14, decimal_places=2)
    current_outstanding = serializers.DecimalField(max_digits=14, decimal_places=2)
    credit_utilization = serializers.DecimalField(max_digits=8, decimal_places=2)
    available_credit = serializers.DecimalField(max_digits=14, decimal_places=2)
    band = serializers.CharField()
    open_invoice_count = serializers.IntegerField()

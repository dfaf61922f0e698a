# apps/parties/admin.py
"""
Django admin configuration for Customer and Vendor.

current_outstanding is derived from invoices and shown read-only.
"""
from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import Customer, Vendor


@admin.register(Customer)
class CustomerAdmin(SimpleHistoryAdmin):
    list_display = [
        'code', 'name', 'entity', 'credit_terms', 'credit_limit',
        'current_outstanding', 'is_active',
    ]
    list_filter = ['entity', 'credit_terms', 'is_active']
    search_fields = ['code', 'name', 'gstin', 'email']
    readonly_fields = ['current_outstanding', 'created_at', 'updated_at']


@admin.register(Vendor)
class VendorAdmin(SimpleHistoryAdmin):
    list_display = [
        'code', 'name', 'entity', 'payment_terms', 'credit_limit',
        'current_outstanding', 'is_active',
    ]
    list_filter = ['entity', 'payment_terms', 'is_active']
    search_fields = ['code', 'name', 'gstin', 'email']
    readonly_fields = ['current_outstanding', 'created_at', 'updated_at']
    fieldsets = [
        (None, {
            'fields': ['entity', 'code', 'name', 'is_active']
        }),
        ('Contact', {
            'fields': ['contact_person', 'email', 'phone', 'gstin', 'pan']
        }),
        ('Address', {
            'fields': [
                'address_street', 'address_city', 'address_state',
                'address_pincode', 'address_country',
            ],
            'classes': ['collapse']
        }),
        ('Bank Details', {
            'fields': [
                'bank_account_name', 'bank_account_number',
                'bank_bank_name', 'bank_ifsc_code',
            ],
            'classes': ['collapse']
        }),
        ('Credit', {
            'fields': [
                'payment_terms', 'custom_payment_days',
                'credit_limit', 'current_outstanding',
            ]
        }),
        ('Audit', {
            'fields': ['notes', 'created_at', 'updated_at'],
            'classes': ['collapse']
        }),
    ]

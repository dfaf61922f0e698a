# apps/payments/admin.py
from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import Payment, PaymentAllocation


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    fields = ['invoice', 'allocated_amount', 'allocation_date', 'allocated_by']
    readonly_fields = ['invoice', 'allocated_amount', 'allocation_date', 'allocated_by']
    can_delete = False


@admin.register(Payment)
class PaymentAdmin(SimpleHistoryAdmin):
    list_display = [
        'payment_number', 'payment_type', 'customer', 'vendor', 'amount',
        'allocated_amount', 'payment_mode', 'status', 'payment_date',
    ]
    list_filter = ['entity', 'payment_type', 'status', 'payment_mode', 'payment_date']
    search_fields = ['payment_number', 'reference_number', 'customer__name', 'vendor__name']
    readonly_fields = [
        'payment_number', 'allocated_amount', 'is_reconciled', 'reconciled_date',
        'version', 'created_at', 'updated_at',
    ]
    inlines = [PaymentAllocationInline]
    fieldsets = (
        (None, {
            'fields': ('entity', 'payment_number', 'payment_type', 'customer', 'vendor', 'status')
        }),
        ('Payment Details', {
            'fields': (
                'payment_date', 'amount', 'currency', 'payment_mode', 'bank_account',
                'reference_number', 'cheque_number', 'cheque_date', 'tds_deducted',
            )
        }),
        ('Allocation', {
            'fields': ('allocated_amount', 'is_reconciled', 'reconciled_date', 'version')
        }),
        ('Notes', {
            'fields': ('notes', 'recorded_by')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

# apps/invoicing/admin.py
"""
Django admin configuration for Invoice models.

Settlement fields are derived and read-only here; edits go through
InvoicingService so totals and status stay consistent.
"""
from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import Invoice, InvoiceLine


class InvoiceLineInline(admin.TabularInline):
    """Inline viewer for invoice lines."""
    model = InvoiceLine
    extra = 0
    fields = ['line_number', 'description', 'hsn_code', 'quantity', 'unit', 'rate', 'tax_rate', 'total_amount']
    readonly_fields = ['total_amount']


@admin.register(Invoice)
class InvoiceAdmin(SimpleHistoryAdmin):
    """Admin interface for Invoice."""
    list_display = [
        'invoice_number', 'invoice_type', 'customer', 'vendor', 'invoice_date',
        'due_date', 'status', 'aging_bucket', 'total_amount', 'amount_paid', 'amount_due',
    ]
    list_filter = ['entity', 'invoice_type', 'status', 'aging_bucket']
    search_fields = ['invoice_number', 'customer__name', 'vendor__name', 'reference_number']
    raw_id_fields = ['customer', 'vendor']
    date_hierarchy = 'invoice_date'
    inlines = [InvoiceLineInline]
    readonly_fields = [
        'subtotal', 'line_tax', 'total_tax', 'total_amount',
        'amount_paid', 'amount_due', 'status', 'days_overdue', 'aging_bucket',
        'version', 'cancelled_at', 'created_at', 'updated_at',
    ]

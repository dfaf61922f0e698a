# apps/banking/admin.py
from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import BankAccount, ImportBatch, Transaction


@admin.register(BankAccount)
class BankAccountAdmin(SimpleHistoryAdmin):
    list_display = ['account_name', 'entity', 'account_type', 'bank_name', 'currency', 'current_balance', 'is_active']
    list_filter = ['entity', 'account_type', 'currency', 'is_active']
    search_fields = ['account_name', 'account_number', 'bank_name', 'ifsc_code']
    readonly_fields = ['current_balance', 'created_at', 'updated_at']


@admin.register(Transaction)
class TransactionAdmin(SimpleHistoryAdmin):
    list_display = [
        'transaction_code', 'transaction_date', 'entity', 'transaction_type',
        'party_name', 'amount', 'total_amount', 'status',
    ]
    list_filter = ['entity', 'transaction_type', 'status']
    search_fields = ['transaction_code', 'party_name', 'description']
    date_hierarchy = 'transaction_date'
    readonly_fields = ['transaction_code', 'total_amount', 'import_batch', 'created_at', 'updated_at']


@admin.register(ImportBatch)
class ImportBatchAdmin(admin.ModelAdmin):
    list_display = ['token', 'file_name', 'status', 'total_rows', 'created_by', 'created_at', 'committed_at']
    list_filter = ['status']
    readonly_fields = ['token', 'rows', 'errors', 'result', 'committed_at']

# apps/api/v1/serializers/banking.py
"""
Serializers for bank accounts, ledger transactions and CSV import.
"""
from rest_framework import serializers

from apps.banking.models import BankAccount, Transaction
from apps.banking.services import BankingService
from .base import EntityModelSerializer


class BankAccountSerializer(EntityModelSerializer):
    balance_status = serializers.CharField(read_only=True)

    class Meta:
        model = BankAccount
        fields = [
            'id', 'entity', 'account_name', 'account_type', 'account_number',
            'bank_name', 'ifsc_code', 'branch_name', 'currency',
            'opening_balance', 'opening_balance_date', 'current_balance',
            'balance_status', 'is_active',
        ]
        read_only_fields = fields


class TransactionSerializer(EntityModelSerializer):
    bank_account_name = serializers.CharField(source='bank_account.account_name', read_only=True, default='')

    class Meta:
        model = Transaction
        fields = [
            'id', 'entity', 'transaction_code', 'bank_account', 'bank_account_name',
            'transaction_date', 'transaction_type', 'category', 'party_name', 'description',
            'amount', 'cgst', 'sgst', 'igst', 'tds_amount', 'total_amount',
            'status', 'import_batch', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class BulkUpdateSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    status = serializers.ChoiceField(choices=BankingService.BULK_STATUSES)


class ImportPreviewSerializer(serializers.Serializer):
    file = serializers.FileField()

    def validate_file(self, value):
        if not value.name.lower().endswith('.csv'):
            raise serializers.ValidationError('Only CSV files are supported.')
        return value


class ImportCommitSerializer(serializers.Serializer):
    temp_file_path = serializers.CharField(help_text="Token returned by the preview step")

# apps/api/v1/views/banking.py
"""
ViewSets for bank accounts and ledger transactions, including bulk status
updates and the two-step CSV import.
"""
from rest_framework import mixins, status
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view

from apps.banking.models import BankAccount, Transaction
from apps.banking.services import BankingService
from apps.core.importers import TransactionImporter
from .base import EntityViewSet
from ..serializers.banking import (
    BankAccountSerializer,
    BulkUpdateSerializer,
    ImportCommitSerializer,
    ImportPreviewSerializer,
    TransactionSerializer,
)


@extend_schema_view(
    list=extend_schema(tags=['Banking'], summary='List bank accounts'),
    retrieve=extend_schema(tags=['Banking'], summary='Get bank account'),
)
class BankAccountViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, EntityViewSet):
    model = BankAccount
    serializer_class = BankAccountSerializer
    filterset_fields = ['account_type', 'currency', 'is_active']
    search_fields = ['account_name', 'bank_name', 'account_number']
    ordering = ['account_name']


@extend_schema_view(
    list=extend_schema(tags=['Banking'], summary='List transactions'),
    retrieve=extend_schema(tags=['Banking'], summary='Get transaction'),
)
class TransactionViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, EntityViewSet):
    """
    Ledger transactions.

    Supports:
    - List/retrieve
    - Bulk status update (each record independent)
    - CSV import: preview stages the file, commit writes it once per token
    """
    model = Transaction
    serializer_class = TransactionSerializer
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    filterset_fields = ['transaction_type', 'status', 'bank_account', 'category', 'import_batch']
    search_fields = ['transaction_code', 'party_name', 'description', 'category']
    ordering_fields = ['transaction_date', 'amount', 'total_amount']
    ordering = ['-transaction_date', '-id']

    def get_queryset(self):
        return super().get_queryset().select_related('bank_account')

    @extend_schema(request=BulkUpdateSerializer, tags=['Banking'], summary='Set the status of many transactions')
    @action(detail=False, methods=['post'], url_path='bulk-update')
    def bulk_update(self, request):
        serializer = BulkUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = BankingService(self.entity, request.user)
        result = service.bulk_update_status(
            serializer.validated_data['ids'],
            serializer.validated_data['status'],
        )
        return Response({
            'success': not result['errors'],
            'message': f"{len(result['updated'])} transaction(s) updated",
            'data': result,
        })

    @extend_schema(request=ImportPreviewSerializer, tags=['Banking'], summary='Validate and stage a CSV import')
    @action(detail=False, methods=['post'], url_path='import/preview', url_name='import-preview')
    def import_preview(self, request):
        serializer = ImportPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        file = serializer.validated_data['file']

        importer = TransactionImporter(request.user, self.ledger_context.entities)
        report = importer.preview(file, file_name=file.name)
        return Response({'success': True, 'data': report})

    @extend_schema(request=ImportCommitSerializer, tags=['Banking'], summary='Commit a staged CSV import')
    @action(detail=False, methods=['post'], url_path='import/commit', url_name='import-commit')
    def import_commit(self, request):
        serializer = ImportCommitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        importer = TransactionImporter(request.user, self.ledger_context.entities)
        result = importer.commit(serializer.validated_data['temp_file_path'])
        return Response({
            'success': True,
            'message': f"{result['imported']} transaction(s) imported, {result['skipped']} skipped",
            'data': result,
        }, status=status.HTTP_200_OK)

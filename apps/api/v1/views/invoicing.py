# apps/api/v1/views/invoicing.py
"""
ViewSets for Invoices.

Creation, edits, finalization and cancellation go through InvoicingService;
nothing writes invoice rows directly.
"""
from rest_framework import mixins, status
from rest_framework.decorators import action
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from apps.invoicing.models import Invoice
from apps.invoicing.services import InvoicingService
from apps.parties.models import Customer, Vendor
from apps.reporting.services import AgingReportService
from shared.exceptions import NotFound
from .base import EntityViewSet
from ..serializers.base import ReasonSerializer, VersionSerializer
from ..serializers.invoicing import (
    InvoiceCreateSerializer,
    InvoiceDetailSerializer,
    InvoiceListSerializer,
    InvoiceUpdateSerializer,
)


@extend_schema_view(
    list=extend_schema(description="List invoices", tags=["Invoices"]),
    retrieve=extend_schema(description="Get invoice details with lines and allocations", tags=["Invoices"]),
    create=extend_schema(request=InvoiceCreateSerializer, responses={201: InvoiceDetailSerializer},
                         description="Create an invoice; totals are computed server-side", tags=["Invoices"]),
    partial_update=extend_schema(request=InvoiceUpdateSerializer, responses={200: InvoiceDetailSerializer},
                                 description="Edit an invoice that has no allocations", tags=["Invoices"]),
)
class InvoiceViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    EntityViewSet,
):
    """
    ViewSet for sales and purchase invoices.

    Supports:
    - List/retrieve invoices
    - Create invoices (draft or finalized)
    - PATCH edits before any payment is allocated
    - Finalize and cancel
    - Aging report
    """
    model = Invoice
    http_method_names = ['get', 'post', 'patch', 'head', 'options']
    filterset_fields = ['invoice_type', 'status', 'aging_bucket', 'customer', 'vendor']
    search_fields = ['invoice_number', 'reference_number', 'customer__name', 'vendor__name']
    ordering_fields = ['invoice_date', 'due_date', 'total_amount', 'amount_due', 'invoice_number']
    ordering = ['-invoice_date', '-id']

    def get_queryset(self):
        qs = super().get_queryset().select_related('customer', 'vendor')
        if self.action == 'retrieve':
            qs = qs.prefetch_related('lines', 'allocations__payment')
        return qs

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return InvoiceDetailSerializer
        return InvoiceListSerializer

    def get_service(self):
        return InvoicingService(self.entity, self.request.user)

    def _detail(self, invoice, http_status=status.HTTP_200_OK):
        invoice = self.get_queryset().prefetch_related('lines', 'allocations__payment').get(pk=invoice.pk)
        return Response(InvoiceDetailSerializer(invoice, context=self.get_serializer_context()).data, status=http_status)

    def list(self, request, *args, **kwargs):
        # status and aging_bucket filters read stored values; age them to today first
        self.get_service().refresh_statuses()
        return super().list(request, *args, **kwargs)

    def retrieve(self, request, *args, **kwargs):
        invoice = self.get_object()
        if invoice.is_open:
            invoice = self.get_service().refresh_state(invoice.pk)
        return self._detail(invoice)

    def create(self, request, *args, **kwargs):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        customer_id = data.pop('customer', None)
        vendor_id = data.pop('vendor', None)
        party_model = Customer if data['invoice_type'] == 'sales' else Vendor
        party_id = customer_id or vendor_id
        try:
            party = party_model.objects.for_entity(self.entity).get(pk=party_id)
        except party_model.DoesNotExist:
            raise NotFound(f"{party_model.__name__} {party_id} not found", model=party_model.__name__, pk=party_id)

        invoice = self.get_service().create_invoice(
            invoice_type=data.pop('invoice_type'),
            party=party,
            lines=data.pop('lines'),
            **data,
        )
        return self._detail(invoice, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        invoice = self.get_object()
        serializer = InvoiceUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        version = changes.pop('version', None)
        lines = changes.pop('lines', None)

        invoice = self.get_service().update_invoice(
            invoice.pk, lines=lines, expected_version=version, **changes,
        )
        return self._detail(invoice)

    @extend_schema(request=VersionSerializer, responses={200: InvoiceDetailSerializer},
                   description="Finalize a draft invoice", tags=["Invoices"])
    @action(detail=True, methods=['post'])
    def finalize(self, request, pk=None):
        invoice = self.get_object()
        serializer = VersionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice = self.get_service().finalize(invoice.pk, expected_version=serializer.validated_data.get('version'))
        return self._detail(invoice)

    @extend_schema(request=ReasonSerializer, responses={200: InvoiceDetailSerializer},
                   description="Cancel an invoice without allocations", tags=["Invoices"])
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        invoice = self.get_object()
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice = self.get_service().cancel(
            invoice.pk,
            reason=serializer.validated_data['reason'],
            expected_version=serializer.validated_data.get('version'),
        )
        return self._detail(invoice)

    @extend_schema(
        request=None,
        description="Recompute status and aging of all open invoices as of today",
        tags=["Invoices"],
    )
    @action(detail=False, methods=['post'], url_path='refresh-statuses')
    def refresh_statuses(self, request):
        changed = self.get_service().refresh_statuses(as_of=self.query_date('date'))
        return Response({'success': True, 'changed': changed})

    @extend_schema(
        parameters=[
            OpenApiParameter('invoice_type', str, enum=['sales', 'purchase']),
            OpenApiParameter('start_date', str, description="Invoice date from (YYYY-MM-DD)"),
            OpenApiParameter('end_date', str, description="Invoice date to (YYYY-MM-DD)"),
            OpenApiParameter('currency', str, description="Default from settings"),
        ],
        description="Invoice totals grouped by status",
        tags=["Invoices"],
    )
    @action(detail=False, methods=['get'])
    def summary(self, request):
        service = self.get_service()
        service.refresh_statuses()
        data = service.get_invoice_summary(
            invoice_type=request.query_params.get('invoice_type'),
            start_date=self.query_date('start_date'),
            end_date=self.query_date('end_date'),
            currency=request.query_params.get('currency'),
        )
        return Response({'success': True, 'data': data})

    @extend_schema(
        parameters=[
            OpenApiParameter('invoice_type', str, enum=['sales', 'purchase'], description="Default: sales"),
            OpenApiParameter('date', str, description="As-of date (YYYY-MM-DD); default today"),
        ],
        description="Aging report grouped by party",
        tags=["Invoices"],
    )
    @action(detail=False, methods=['get'])
    def aging(self, request):
        invoice_type = request.query_params.get('invoice_type', 'sales')
        if invoice_type not in ('sales', 'purchase'):
            return Response(
                {'success': False, 'error': 'ValidationError', 'message': "invoice_type must be 'sales' or 'purchase'"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        report = AgingReportService.get_aging_report(self.entity, invoice_type, self.query_date('date'))
        return Response(report)

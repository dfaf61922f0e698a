# apps/api/v1/views/payments.py
"""
ViewSets for Payments and allocations.

Allocation and reversal go through AllocationEngine; payment status changes
go through PaymentService.
"""
from rest_framework import mixins, status
from rest_framework.decorators import action
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from apps.banking.models import BankAccount
from apps.parties.models import Customer, Vendor
from apps.payments.allocation import AllocationEngine
from apps.payments.models import Payment
from apps.payments.services import PaymentService
from shared.exceptions import NotFound
from .base import EntityViewSet
from ..serializers.base import ReasonSerializer, VersionSerializer
from ..serializers.payments import (
    AllocateSerializer,
    CreatePaymentSerializer,
    DeallocateSerializer,
    PaymentDetailSerializer,
    PaymentListSerializer,
    ProposedAllocationSerializer,
    ProposeSerializer,
)


def _get_in_entity(model, entity, pk):
    try:
        return model.objects.for_entity(entity).get(pk=pk)
    except model.DoesNotExist:
        raise NotFound(f"{model.__name__} {pk} not found", model=model.__name__, pk=pk)


@extend_schema_view(
    list=extend_schema(description="List payments", tags=["Payments"]),
    retrieve=extend_schema(description="Get payment details with allocations", tags=["Payments"]),
    create=extend_schema(request=CreatePaymentSerializer, responses={201: PaymentDetailSerializer},
                         description="Record a payment received or made", tags=["Payments"]),
)
class PaymentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    EntityViewSet,
):
    """
    ViewSet for payments received from customers and made to vendors.

    Supports:
    - List/retrieve payments
    - Record payments
    - Allocate to invoices, reverse allocations, propose a split
    - Clear, bounce and cancel
    """
    model = Payment
    filterset_fields = ['payment_type', 'status', 'payment_mode', 'customer', 'vendor', 'bank_account', 'is_reconciled']
    search_fields = ['payment_number', 'reference_number', 'cheque_number', 'customer__name', 'vendor__name']
    ordering_fields = ['payment_date', 'amount', 'payment_number']
    ordering = ['-payment_date', '-id']

    def get_queryset(self):
        qs = super().get_queryset().select_related('customer', 'vendor', 'bank_account')
        if self.action == 'retrieve':
            qs = qs.prefetch_related('allocations__invoice')
        return qs

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return PaymentDetailSerializer
        return PaymentListSerializer

    def _detail(self, payment, http_status=status.HTTP_200_OK):
        payment = self.get_queryset().prefetch_related('allocations__invoice').get(pk=payment.pk)
        return Response(PaymentDetailSerializer(payment, context=self.get_serializer_context()).data, status=http_status)

    def create(self, request, *args, **kwargs):
        serializer = CreatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        customer_id = data.pop('customer', None)
        vendor_id = data.pop('vendor', None)
        if data['payment_type'] == 'received':
            party = _get_in_entity(Customer, self.entity, customer_id)
        else:
            party = _get_in_entity(Vendor, self.entity, vendor_id)

        bank_account_id = data.pop('bank_account', None)
        bank_account = _get_in_entity(BankAccount, self.entity, bank_account_id) if bank_account_id else None

        service = PaymentService(self.entity, request.user)
        payment = service.create_payment(
            payment_type=data.pop('payment_type'),
            party=party,
            bank_account=bank_account,
            **data,
        )
        return self._detail(payment, status.HTTP_201_CREATED)

    # ─── ALLOCATION ─────────────────────────────────────────────────────────

    @extend_schema(
        request=AllocateSerializer,
        description="Allocate the payment to one or more invoices (all or nothing)",
        tags=["Payments"],
    )
    @action(detail=True, methods=['post'])
    def allocate(self, request, pk=None):
        payment = self.get_object()
        serializer = AllocateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        allocations = serializer.validated_data['allocations']
        invoice_versions = {
            item['invoice_id']: item['version']
            for item in allocations
            if item.get('version') is not None
        }
        engine = AllocationEngine(self.entity, request.user)
        result = engine.allocate(
            payment_id=payment.pk,
            allocations=[{'invoice_id': a['invoice_id'], 'amount': a['amount']} for a in allocations],
            payment_version=serializer.validated_data.get('payment_version'),
            invoice_versions=invoice_versions or None,
        )
        return Response({'success': True, 'data': result.as_dict()})

    @extend_schema(
        request=DeallocateSerializer,
        description="Reverse all or part of an allocation",
        tags=["Payments"],
    )
    @action(detail=True, methods=['post'])
    def deallocate(self, request, pk=None):
        payment = self.get_object()
        serializer = DeallocateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        engine = AllocationEngine(self.entity, request.user)
        result = engine.deallocate(
            payment_id=payment.pk,
            invoice_id=data['invoice_id'],
            amount=data.get('amount'),
            payment_version=data.get('payment_version'),
            invoice_version=data.get('invoice_version'),
        )
        return Response({'success': True, 'data': result.as_dict()})

    @extend_schema(
        request=ProposeSerializer,
        responses={200: ProposedAllocationSerializer(many=True)},
        description="Suggest allocation amounts without writing anything",
        tags=["Payments"],
    )
    @action(detail=True, methods=['post'])
    def propose(self, request, pk=None):
        payment = self.get_object()
        serializer = ProposeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        engine = AllocationEngine(self.entity, request.user)
        proposals = engine.propose(
            payment.pk,
            invoice_ids=serializer.validated_data.get('invoice_ids'),
            requested=serializer.validated_data.get('requested'),
        )
        return Response({'success': True, 'data': ProposedAllocationSerializer(proposals, many=True).data})

    # ─── STATUS ─────────────────────────────────────────────────────────────

    @extend_schema(request=VersionSerializer, responses={200: PaymentDetailSerializer},
                   description="Mark a pending payment as cleared", tags=["Payments"])
    @action(detail=True, methods=['post'])
    def clear(self, request, pk=None):
        payment = self.get_object()
        serializer = VersionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = PaymentService(self.entity, request.user)
        payment = service.mark_cleared(payment.pk, expected_version=serializer.validated_data.get('version'))
        return self._detail(payment)

    @extend_schema(request=VersionSerializer, responses={200: PaymentDetailSerializer},
                   description="Mark a payment as bounced (requires no allocations)", tags=["Payments"])
    @action(detail=True, methods=['post'])
    def bounce(self, request, pk=None):
        payment = self.get_object()
        serializer = VersionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = PaymentService(self.entity, request.user)
        payment = service.mark_bounced(payment.pk, expected_version=serializer.validated_data.get('version'))
        return self._detail(payment)

    @extend_schema(request=ReasonSerializer, responses={200: PaymentDetailSerializer},
                   description="Cancel a payment (requires no allocations)", tags=["Payments"])
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        payment = self.get_object()
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = PaymentService(self.entity, request.user)
        payment = service.cancel_payment(
            payment.pk,
            reason=serializer.validated_data['reason'],
            expected_version=serializer.validated_data.get('version'),
        )
        return self._detail(payment)

    # ─── QUERIES ────────────────────────────────────────────────────────────

    @extend_schema(
        parameters=[OpenApiParameter('payment_type', str, enum=['received', 'made'])],
        responses={200: PaymentListSerializer(many=True)},
        description="Payments with money left to allocate",
        tags=["Payments"],
    )
    @action(detail=False, methods=['get'])
    def unallocated(self, request):
        service = PaymentService(self.entity, request.user)
        payments = service.get_unallocated_payments(payment_type=request.query_params.get('payment_type'))
        page = self.paginate_queryset(payments)
        if page is not None:
            return self.get_paginated_response(PaymentListSerializer(page, many=True).data)
        return Response(PaymentListSerializer(payments, many=True).data)

    @extend_schema(
        parameters=[
            OpenApiParameter('payment_type', str, enum=['received', 'made']),
            OpenApiParameter('start_date', str, description="YYYY-MM-DD"),
            OpenApiParameter('end_date', str, description="YYYY-MM-DD"),
        ],
        description="Payment totals grouped by payment mode",
        tags=["Payments"],
    )
    @action(detail=False, methods=['get'])
    def summary(self, request):
        service = PaymentService(self.entity, request.user)
        data = service.get_payment_summary(
            payment_type=request.query_params.get('payment_type'),
            start_date=self.query_date('start_date'),
            end_date=self.query_date('end_date'),
        )
        return Response({'success': True, 'data': data})

# apps/api/v1/views/parties.py
"""
ViewSets for Customers and Vendors.
"""
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters
from drf_spectacular.utils import extend_schema, extend_schema_view

from apps.parties.credit import CreditExposureCalculator
from apps.parties.models import Customer, Vendor
from .base import EntityScopedMixin
from ..serializers.parties import CreditExposureSerializer, CustomerSerializer, VendorSerializer


class PartyViewSetMixin(EntityScopedMixin):
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active']
    search_fields = ['code', 'name', 'email', 'gstin', 'contact_person']
    ordering_fields = ['name', 'code', 'credit_limit', 'current_outstanding']
    ordering = ['name']

    @extend_schema(responses={200: CreditExposureSerializer}, description="Credit exposure from open invoices")
    @action(detail=True, methods=['get'])
    def exposure(self, request, pk=None):
        party = self.get_object()
        exposure = CreditExposureCalculator().exposure(party)
        return Response(CreditExposureSerializer(exposure.as_dict()).data)


@extend_schema_view(
    list=extend_schema(tags=['Parties'], summary='List customers'),
    retrieve=extend_schema(tags=['Parties'], summary='Get customer details'),
    exposure=extend_schema(tags=['Parties'], summary='Customer credit exposure'),
)
class CustomerViewSet(PartyViewSetMixin, viewsets.ReadOnlyModelViewSet):
    model = Customer
    serializer_class = CustomerSerializer
    filterset_fields = ['is_active', 'credit_terms']


@extend_schema_view(
    list=extend_schema(tags=['Parties'], summary='List vendors'),
    retrieve=extend_schema(tags=['Parties'], summary='Get vendor details'),
    exposure=extend_schema(tags=['Parties'], summary='Vendor credit exposure'),
)
class VendorViewSet(PartyViewSetMixin, viewsets.ReadOnlyModelViewSet):
    model = Vendor
    serializer_class = VendorSerializer
    filterset_fields = ['is_active', 'payment_terms']

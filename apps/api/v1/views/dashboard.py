# apps/api/v1/views/dashboard.py
"""
Dashboard API endpoints.

With an entity selected (X-Entity-ID) the figures cover that entity;
otherwise they cover every entity the user belongs to.
"""
from django.core.exceptions import ValidationError
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.reporting.dashboard import DashboardAggregator
from .base import EntityScopedMixin

DATE_PARAMS = [
    OpenApiParameter('start_date', str, description="YYYY-MM-DD; default 30 days before end_date"),
    OpenApiParameter('end_date', str, description="YYYY-MM-DD; default today"),
]


class DashboardViewSet(EntityScopedMixin, viewsets.ViewSet):
    """GET /api/v1/dashboard/{stats,ar-ap-summary,monthly-trends,entity-summary}/"""

    def get_aggregator(self):
        context = self.ledger_context
        entities = [context.entity] if context.entity is not None else context.entities
        return DashboardAggregator(entities, as_of=self.query_date('date'))

    @extend_schema(
        tags=['dashboard'],
        summary='Balances and transaction totals',
        parameters=DATE_PARAMS,
    )
    @action(detail=False, methods=['get'])
    def stats(self, request):
        data = self.get_aggregator().stats(self.query_date('start_date'), self.query_date('end_date'))
        return Response({'success': True, 'data': data})

    @extend_schema(
        tags=['dashboard'],
        summary='Receivables and payables with aging and top parties',
        parameters=[
            OpenApiParameter('top_n', int, description="Number of parties to list"),
            OpenApiParameter('currency', str, description="Invoice currency; default from settings"),
            OpenApiParameter('date', str, description="As-of date (YYYY-MM-DD); default today"),
        ],
    )
    @action(detail=False, methods=['get'], url_path='ar-ap-summary')
    def ar_ap_summary(self, request):
        try:
            top_n = int(request.query_params.get('top_n') or 0) or None
        except ValueError:
            top_n = None
        data = self.get_aggregator().ar_ap_summary(top_n=top_n, currency=request.query_params.get('currency'))
        return Response({'success': True, 'data': data})

    @extend_schema(
        tags=['dashboard'],
        summary='Income, expense and net per month',
        parameters=[
            OpenApiParameter('months', int, description="Months before the current one; default 6"),
            OpenApiParameter('date', str, description="As-of date (YYYY-MM-DD); default today"),
        ],
    )
    @action(detail=False, methods=['get'], url_path='monthly-trends')
    def monthly_trends(self, request):
        try:
            months = int(request.query_params.get('months') or 6)
        except ValueError:
            raise ValidationError({'months': 'Must be a whole number.'})
        if not 0 <= months <= 36:
            raise ValidationError({'months': 'Must be between 0 and 36.'})
        data = self.get_aggregator().monthly_trends(months)
        return Response({'success': True, 'data': data})

    @extend_schema(
        tags=['dashboard'],
        summary='Balance and income/expense per entity',
        parameters=DATE_PARAMS,
    )
    @action(detail=False, methods=['get'], url_path='entity-summary')
    def entity_summary(self, request):
        data = self.get_aggregator().entity_summary(self.query_date('start_date'), self.query_date('end_date'))
        return Response({'success': True, 'data': data})

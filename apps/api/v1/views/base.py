# apps/api/v1/views/base.py
"""
Base ViewSet classes for entity-scoped API views.
"""
from rest_framework import filters, serializers, viewsets
from django_filters.rest_framework import DjangoFilterBackend

from apps.api.permissions import get_request_context


class EntityScopedMixin:
    """
    Gives views the request's RequestContext and scopes querysets to the
    selected entity.

    Usage:
        class InvoiceViewSet(EntityScopedMixin, viewsets.ReadOnlyModelViewSet):
            model = Invoice
    """
    model = None  # Subclasses must set this

    @property
    def ledger_context(self):
        return get_request_context(self.request)

    @property
    def entity(self):
        return self.ledger_context.require_entity()

    def get_queryset(self):
        if self.model is None:
            raise NotImplementedError(
                f"{self.__class__.__name__} must define 'model' attribute"
            )
        if getattr(self, 'swagger_fake_view', False):
            return self.model.objects.none()
        return self.model.objects.for_entity(self.entity)

    def query_date(self, name):
        """Parse an optional YYYY-MM-DD query parameter."""
        value = self.request.query_params.get(name)
        if not value:
            return None
        return serializers.DateField().to_internal_value(value)


class EntityViewSet(EntityScopedMixin, viewsets.GenericViewSet):
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]

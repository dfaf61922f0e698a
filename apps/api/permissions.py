# apps/api/permissions.py
"""
Entity-aware permissions for the REST API.

The entity a request acts on comes from the X-Entity-ID header (or the
``entity`` query parameter) and must be one of the user's entities. The
resolved RequestContext is cached on the request for the views.
"""
from rest_framework import permissions

from shared.context import RequestContext

ENTITY_HEADER = 'X-Entity-ID'
ENTITY_PARAM = 'entity'


def get_request_context(request):
    """
    Build (once per request) the RequestContext for the authenticated user.

    With no entity selected and exactly one entity available, that entity
    is used.

    Raises:
        PermissionError: Unknown entity or one the user is not a member of
    """
    context = getattr(request, 'ledger_context', None)
    if context is not None:
        return context

    from apps.entities.models import Entity

    raw = request.headers.get(ENTITY_HEADER) or request.query_params.get(ENTITY_PARAM)
    entity = None
    if raw:
        try:
            entity = Entity.objects.get(pk=int(raw))
        except (ValueError, Entity.DoesNotExist):
            raise PermissionError(f"Entity {raw} is not available")

    context = RequestContext.for_user(request.user, entity)
    if context.entity is None and len(context.entities) == 1:
        context = RequestContext(user=request.user, entity=context.entities[0], entities=context.entities)
    request.ledger_context = context
    return context


class IsEntityMember(permissions.BasePermission):
    """
    The user must be authenticated and, when an entity is selected, belong
    to it. Objects must belong to the selected entity.
    """
    message = "You do not have permission to access this entity's data."

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        try:
            context = get_request_context(request)
        except PermissionError:
            return False
        return bool(context.entities)

    def has_object_permission(self, request, view, obj):
        context = get_request_context(request)
        if hasattr(obj, 'entity_id'):
            return obj.entity_id == getattr(context.entity, 'pk', None)
        return True

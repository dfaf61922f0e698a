# shared/managers.py
"""
Entity-scoped querysets.

Scoping is always explicit: callers pass the entity they are acting for.
There is no ambient "current entity" so two requests running in the same
process can never see each other's context.
"""
from django.db import models


class EntityQuerySet(models.QuerySet):
    """
    QuerySet with entity scoping helpers.

    Usage:
        Invoice.objects.for_entity(entity).filter(status='overdue')
        Invoice.objects.for_entities(request_context.entities)
    """

    def for_entity(self, entity):
        return self.filter(entity=entity)

    def for_entities(self, entities):
        return self.filter(entity__in=entities)


EntityManager = models.Manager.from_queryset(EntityQuerySet)

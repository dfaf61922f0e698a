# shared/models.py
"""
Abstract base models for the entire application.

EntityMixin: Ties a row to the Entity (business) that owns it
TimestampMixin: Adds created_at and updated_at timestamps
VersionedMixin: Optimistic concurrency counter for rows mutated by the engine
"""
from django.db import models

from .exceptions import ConcurrencyConflict
from .managers import EntityManager


class EntityMixin(models.Model):
    """
    Abstract base model for entity-owned models.

    Queries are NOT filtered implicitly. Use the queryset helpers:

        Customer.objects.for_entity(entity)
    """
    entity = models.ForeignKey(
        'entities.Entity',
        on_delete=models.CASCADE,
        related_name='%(class)s_set'
    )

    objects = EntityManager()

    class Meta:
        abstract = True


class TimestampMixin(models.Model):
    """
    Abstract base model that adds timestamp tracking.

    Provides:
    - created_at: Set once when record is created
    - updated_at: Updated every time record is saved
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Adds a monotonically increasing version number.

    Services bump the version on every state change made under a row lock.
    Callers that read a row earlier can pass the version they saw; a
    mismatch means somebody else wrote in between.
    """
    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every engine mutation"
    )

    class Meta:
        abstract = True

    def check_version(self, expected):
        if expected is not None and int(expected) != self.version:
            raise ConcurrencyConflict(
                f"{self.__class__.__name__} {self.pk} was modified "
                f"(expected version {expected}, found {self.version})",
                model=self.__class__.__name__,
                pk=self.pk,
                expected=int(expected),
                actual=self.version,
            )

    def bump_version(self):
        self.version += 1

# shared/context.py
"""
Request-scoped identity.

A RequestContext is built once per API request (or per script invocation)
and handed to services explicitly. It replaces any process-wide notion of
"the current user" or "the current entity".
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RequestContext:
    user: object
    entity: object
    entities: tuple = field(default_factory=tuple)

    @classmethod
    def for_user(cls, user, entity=None):
        """
        Build a context for a user, restricted to the entities they belong to.

        Args:
            user: Authenticated user
            entity: Entity to act on; must be one of the user's entities

        Raises:
            PermissionError: If the user is not a member of entity
        """
        from apps.entities.models import Entity

        entities = tuple(Entity.objects.for_user(user))
        if entity is not None and entity not in entities:
            raise PermissionError(
                f"User {user} is not a member of entity {entity.pk}"
            )
        return cls(user=user, entity=entity, entities=entities)

    def require_entity(self):
        if self.entity is None:
            raise PermissionError("No entity selected for this request")
        return self.entity

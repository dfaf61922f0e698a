# apps/api/v1/serializers/base.py
"""
Base serializers with entity handling.

Entity-scoped serializers inherit from EntityModelSerializer so the
entity is never taken from input and related objects are checked against
the request's entity.
"""
from rest_framework import serializers


class EntitySerializerMixin:
    """
    - Makes 'entity' read-only (it comes from the request context)
    - Validates that related objects belong to the request's entity
    """

    def get_fields(self):
        fields = super().get_fields()
        if 'entity' in fields:
            fields['entity'].read_only = True
        return fields

    def validate(self, attrs):
        request = self.context.get('request')
        context = getattr(request, 'ledger_context', None) if request else None
        if context is None or context.entity is None:
            return super().validate(attrs)

        for field_name, value in attrs.items():
            if value is not None and hasattr(value, 'entity_id') and value.entity_id != context.entity.pk:
                raise serializers.ValidationError({
                    field_name: f"This {field_name} does not belong to the selected entity."
                })
        return super().validate(attrs)


class EntityModelSerializer(EntitySerializerMixin, serializers.ModelSerializer):
    pass


class VersionSerializer(serializers.Serializer):
    """Optional expected version for optimistic concurrency checks."""
    version = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class ReasonSerializer(VersionSerializer):
    reason = serializers.CharField(required=False, default='', allow_blank=True, max_length=255)

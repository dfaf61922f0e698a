# apps/entities/admin.py
from django.contrib import admin
from .models import Entity, EntitySequence


@admin.register(Entity)
class EntityAdmin(admin.ModelAdmin):
    list_display = ['name', 'entity_type', 'gstin', 'base_currency', 'is_active']
    list_filter = ['entity_type', 'is_active']
    search_fields = ['name', 'pan', 'gstin']
    filter_horizontal = ['members']


@admin.register(EntitySequence)
class EntitySequenceAdmin(admin.ModelAdmin):
    list_display = ['entity', 'sequence_type', 'period', 'next_value']
    list_filter = ['sequence_type']

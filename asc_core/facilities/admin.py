# asc_core/facilities/admin.py
from __future__ import annotations

from django.contrib import admin

from asc_core.facilities.models import Facility


@admin.register(Facility)
class FacilityAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "tenant", "is_active", "updated_at")
    list_filter = ("tenant", "is_active")
    search_fields = ("name", "code", "tenant__name")
    autocomplete_fields = ("tenant",)
    ordering = ("tenant", "name")
    readonly_fields = ("id", "created_at", "updated_at")

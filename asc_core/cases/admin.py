# asc_core/cases/admin.py
from django.contrib import admin

from asc_core.cases.models import CaseStatusEvent, SurgicalCase


@admin.register(SurgicalCase)
class SurgicalCaseAdmin(admin.ModelAdmin):
    """
    Read-only: cases change only through the API so transitions stay recorded.
    """
    list_display = ("case_number", "procedure_name", "surgeon", "status", "scheduled_date", "is_active", "is_cancelled")
    list_filter = ("status", "is_active", "is_cancelled", "scheduled_date")
    search_fields = ("case_number", "procedure_name")
    ordering = ("-scheduled_date", "case_number")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CaseStatusEvent)
class CaseStatusEventAdmin(admin.ModelAdmin):
    list_display = ("case_number", "from_status", "to_status", "actor_user_id", "created_at")
    list_filter = ("to_status",)
    search_fields = ("case_number",)
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

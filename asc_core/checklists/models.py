# asc_core/checklists/models.py
from django.conf import settings
from django.db import models

from asc_core.common.models import ScopedModel


class ChecklistKind(models.TextChoices):
    TIMEOUT = "TIMEOUT", "Surgical Timeout"
    DEBRIEF = "DEBRIEF", "Debrief"


class ChecklistStatus(models.TextChoices):
    NOT_STARTED = "NOT_STARTED", "Not Started"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"


class ChecklistInstance(ScopedModel):
    """
    One checklist run per case and kind. A COMPLETED instance is part of the
    permanent record; its case can no longer be deleted.
    """
    surgical_case = models.ForeignKey("cases.SurgicalCase", on_delete=models.CASCADE, related_name="checklists")
    kind = models.CharField(max_length=16, choices=ChecklistKind.choices)
    status = models.CharField(
        max_length=16, choices=ChecklistStatus.choices, default=ChecklistStatus.NOT_STARTED, db_index=True
    )
    responses = models.JSONField(default=dict, blank=True)

    started_at = models.DateTimeField(null=True, blank=True)
    started_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )

    class Meta:
        db_table = "checklist_instance"
        constraints = [
            models.UniqueConstraint(fields=["surgical_case", "kind"], name="uq_checklist_case_kind"),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.status}"

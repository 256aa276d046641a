# asc_core/readiness/models.py
from django.db import models

from asc_core.common.models import ScopedModel


class ReadinessCache(ScopedModel):
    """
    Last computed readiness for display. Never consulted by transition guards.
    """
    surgical_case = models.OneToOneField(
        "cases.SurgicalCase", on_delete=models.CASCADE, related_name="readiness_cache"
    )
    state = models.CharField(max_length=8)
    payload = models.JSONField(default=dict)
    computed_at = models.DateTimeField()

    class Meta:
        db_table = "readiness_cache"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "state"]),
        ]

    def __str__(self) -> str:
        return f"{self.surgical_case_id}: {self.state}"

# asc_core/attestations/models.py
from django.conf import settings
from django.db import models

from asc_core.common.models import ScopedModel


class AttestationType(models.TextChoices):
    CASE_READINESS = "CASE_READINESS", "Case Readiness"
    SURGEON_ACKNOWLEDGMENT = "SURGEON_ACKNOWLEDGMENT", "Surgeon Acknowledgment"


class AttestationState(models.TextChoices):
    NONE = "NONE", "None"
    ATTESTED = "ATTESTED", "Attested"
    VOIDED = "VOIDED", "Voided"


class Attestation(ScopedModel):
    """
    Signed statement about a case. Never deleted; voiding is the only change.
    """
    surgical_case = models.ForeignKey(
        "cases.SurgicalCase",
        on_delete=models.SET_NULL,
        related_name="attestations",
        null=True,
        blank=True,
    )
    type = models.CharField(max_length=32, choices=AttestationType.choices)
    attested_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    readiness_state_at_time = models.CharField(max_length=8, blank=True, default="")
    notes = models.CharField(max_length=1000, blank=True, default="")

    voided_at = models.DateTimeField(null=True, blank=True)
    voided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )
    void_reason = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        db_table = "attestation"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "surgical_case", "type", "created_at"]),
        ]

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None

    def __str__(self) -> str:
        return f"{self.type} ({'voided' if self.is_voided else 'active'})"

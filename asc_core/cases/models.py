# asc_core/cases/models.py
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from asc_core.catalog.models import CatalogItem
from asc_core.common.models import AppendOnlyMixin, ScopedModel


class CaseStatus(models.TextChoices):
    REQUESTED = "REQUESTED", "Requested"
    SCHEDULED = "SCHEDULED", "Scheduled"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    REJECTED = "REJECTED", "Rejected"
    CANCELLED = "CANCELLED", "Cancelled"


class SurgicalCase(ScopedModel):
    """
    A scheduled surgical procedure. Mutated only through CaseService.
    """
    case_number = models.CharField(max_length=16, db_index=True)

    surgeon = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="surgical_cases")
    procedure_name = models.CharField(max_length=255)
    laterality = models.CharField(max_length=16, blank=True, default="")

    requested_date = models.DateField(null=True, blank=True)
    requested_time = models.TimeField(null=True, blank=True)
    scheduled_date = models.DateField(null=True, blank=True, db_index=True)
    scheduled_time = models.TimeField(null=True, blank=True)
    # Rooms are managed by facility configuration; only the id is kept here
    room_id = models.UUIDField(null=True, blank=True)
    estimated_duration_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(15), MaxValueValidator(720)],
    )

    preference_card_version = models.ForeignKey(
        "preference_cards.PreferenceCardVersion",
        on_delete=models.SET_NULL,
        related_name="cases",
        null=True,
        blank=True,
    )

    status = models.CharField(max_length=16, choices=CaseStatus.choices, default=CaseStatus.REQUESTED, db_index=True)

    is_active = models.BooleanField(default=False, db_index=True)
    activated_at = models.DateTimeField(null=True, blank=True)
    activated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )

    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )

    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )
    rejection_reason = models.CharField(max_length=500, blank=True, default="")

    is_cancelled = models.BooleanField(default=False, db_index=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )
    cancellation_reason = models.CharField(max_length=500, blank=True, default="")

    notes = models.TextField(blank=True, default="")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )

    class Meta:
        db_table = "cases_surgical_case"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "status"]),
            models.Index(fields=["tenant_id", "facility_id", "scheduled_date"]),
            models.Index(fields=["tenant_id", "facility_id", "surgeon"]),
        ]
        constraints = [
            models.UniqueConstraint(fields=["facility_id", "case_number"], name="uq_case_number_per_facility"),
            models.CheckConstraint(
                condition=~Q(is_active=True, is_cancelled=True),
                name="ck_case_not_active_and_cancelled",
            ),
            models.CheckConstraint(
                condition=~Q(is_cancelled=True, rejected_at__isnull=False),
                name="ck_case_not_cancelled_and_rejected",
            ),
        ]

    def __str__(self) -> str:
        return f"SurgicalCase({self.case_number}, {self.status})"


class CaseRequirement(ScopedModel):
    """
    Expected catalog item + quantity for a case.
    is_override=True rows are surgeon-authored and survive template re-binding.
    """
    surgical_case = models.ForeignKey(SurgicalCase, on_delete=models.CASCADE, related_name="requirements")
    catalog_item = models.ForeignKey(CatalogItem, on_delete=models.PROTECT, related_name="case_requirements")
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    is_override = models.BooleanField(default=False)
    notes = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        db_table = "cases_case_requirement"
        constraints = [
            models.UniqueConstraint(fields=["surgical_case", "catalog_item"], name="uq_case_requirement_item"),
        ]

    def __str__(self) -> str:
        return f"{self.catalog_item_id} x{self.quantity}"


class CaseStatusEvent(AppendOnlyMixin, ScopedModel):
    """
    Canonical status timeline. Append-only; survives case deletion with
    surgical_case nulled (case_number keeps the trail readable).
    """
    immutable_label = "CaseStatusEvent"

    surgical_case = models.ForeignKey(
        SurgicalCase,
        on_delete=models.SET_NULL,
        related_name="status_events",
        null=True,
        blank=True,
    )
    case_number = models.CharField(max_length=16, blank=True, default="")

    from_status = models.CharField(max_length=16, choices=CaseStatus.choices, null=True, blank=True)
    to_status = models.CharField(max_length=16, choices=CaseStatus.choices)
    reason = models.CharField(max_length=500, blank=True, default="")
    context = models.JSONField(default=dict, blank=True)
    actor_user_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "cases_status_event"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "surgical_case", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.from_status} -> {self.to_status}"


class CaseNumberSequence(models.Model):
    facility_id = models.UUIDField()
    year = models.PositiveSmallIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "cases_case_number_sequence"
        constraints = [
            models.UniqueConstraint(fields=["facility_id", "year"], name="uq_case_number_sequence"),
        ]

# asc_core/preference_cards/models.py
from django.conf import settings
from django.db import models

from asc_core.common.models import ScopedModel


class PreferenceCard(ScopedModel):
    """
    A surgeon's reusable list of expected items for a procedure type.
    Contents are versioned; cases bind to a specific version.
    """
    surgeon = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="preference_cards")
    procedure_name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True, db_index=True)

    current_version = models.ForeignKey(
        "preference_cards.PreferenceCardVersion",
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "preference_card"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "surgeon"]),
        ]

    def __str__(self) -> str:
        return f"PreferenceCard({self.procedure_name})"


class PreferenceCardVersion(ScopedModel):
    """
    Frozen item list. `items` is a list of {"catalog_item_id", "quantity", "notes"}.
    """
    card = models.ForeignKey(PreferenceCard, on_delete=models.CASCADE, related_name="versions")
    version_number = models.PositiveIntegerField()
    items = models.JSONField(default=list, blank=True)
    change_summary = models.CharField(max_length=500, blank=True, default="")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="+",
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "preference_card_version"
        constraints = [
            models.UniqueConstraint(fields=["card", "version_number"], name="uq_preference_card_version"),
        ]

    def __str__(self) -> str:
        return f"{self.card_id} v{self.version_number}"

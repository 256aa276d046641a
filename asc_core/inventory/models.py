# asc_core/inventory/models.py
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from asc_core.catalog.models import CatalogItem
from asc_core.common.models import AppendOnlyMixin, ScopedModel


class SterilityStatus(models.TextChoices):
    STERILE = "STERILE", "Sterile"
    NON_STERILE = "NON_STERILE", "Non-sterile"
    EXPIRED = "EXPIRED", "Expired"
    UNKNOWN = "UNKNOWN", "Unknown"


class AvailabilityStatus(models.TextChoices):
    AVAILABLE = "AVAILABLE", "Available"
    RESERVED = "RESERVED", "Reserved"
    IN_USE = "IN_USE", "In Use"
    UNAVAILABLE = "UNAVAILABLE", "Unavailable"
    MISSING = "MISSING", "Missing"


# Availability values that may carry a case reservation
RESERVATION_HOLDING_STATUSES = (AvailabilityStatus.RESERVED, AvailabilityStatus.IN_USE)


class InventoryEventType(models.TextChoices):
    RECEIVED = "RECEIVED", "Received"
    VERIFIED = "VERIFIED", "Verified"
    LOCATION_CHANGED = "LOCATION_CHANGED", "Location Changed"
    RESERVED = "RESERVED", "Reserved"
    RELEASED = "RELEASED", "Released"
    CONSUMED = "CONSUMED", "Consumed"
    EXPIRED = "EXPIRED", "Expired"
    RETURNED = "RETURNED", "Returned"
    ADJUSTED = "ADJUSTED", "Adjusted"
    MISSING_RESOLVED = "MISSING_RESOLVED", "Missing Resolved"


# Availability an ADJUSTED event may set directly
ADJUSTABLE_AVAILABILITY = (
    AvailabilityStatus.AVAILABLE,
    AvailabilityStatus.UNAVAILABLE,
    AvailabilityStatus.MISSING,
)


class MissingResolutionType(models.TextChoices):
    LOCATED = "LOCATED", "Located"
    VENDOR_REPLACEMENT = "VENDOR_REPLACEMENT", "Vendor Replacement"
    CASE_RESCHEDULED = "CASE_RESCHEDULED", "Case Rescheduled"
    INVENTORY_ERROR_CORRECTED = "INVENTORY_ERROR_CORRECTED", "Inventory Error Corrected"
    OTHER = "OTHER", "Other"


class InventoryItem(ScopedModel):
    """
    One physical trackable unit. State changes go through InventoryLedger.record_event.
    """
    catalog_item = models.ForeignKey(CatalogItem, on_delete=models.PROTECT, related_name="inventory_items")

    serial_number = models.CharField(max_length=128, blank=True, default="")
    lot_number = models.CharField(max_length=128, blank=True, default="")
    barcode = models.CharField(max_length=255, blank=True, default="", db_index=True)

    location_id = models.UUIDField(null=True, blank=True)

    sterility_status = models.CharField(
        max_length=16, choices=SterilityStatus.choices, default=SterilityStatus.UNKNOWN
    )
    sterility_expires_at = models.DateTimeField(null=True, blank=True)

    availability_status = models.CharField(
        max_length=16,
        choices=AvailabilityStatus.choices,
        default=AvailabilityStatus.AVAILABLE,
        db_index=True,
    )
    reserved_for_case = models.ForeignKey(
        "cases.SurgicalCase",
        on_delete=models.SET_NULL,
        related_name="reserved_items",
        null=True,
        blank=True,
    )

    last_verified_at = models.DateTimeField(null=True, blank=True)
    last_verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+", null=True, blank=True
    )

    class Meta:
        db_table = "inventory_item"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "catalog_item"]),
            models.Index(fields=["tenant_id", "facility_id", "availability_status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(reserved_for_case__isnull=True) | Q(availability_status__in=RESERVATION_HOLDING_STATUSES),
                name="ck_inventory_reservation_status",
            ),
        ]

    def __str__(self) -> str:
        return f"InventoryItem({self.catalog_item_id}, {self.serial_number or self.barcode or self.id})"


class InventoryEvent(AppendOnlyMixin, ScopedModel):
    """
    Immutable ledger row for one item state change.
    surgical_case is nulled (not deleted) when the case is purged.
    """
    immutable_label = "InventoryEvent"

    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="events")
    event_type = models.CharField(max_length=20, choices=InventoryEventType.choices, db_index=True)

    surgical_case = models.ForeignKey(
        "cases.SurgicalCase",
        on_delete=models.SET_NULL,
        related_name="inventory_events",
        null=True,
        blank=True,
    )

    location_id = models.UUIDField(null=True, blank=True)
    previous_location_id = models.UUIDField(null=True, blank=True)
    sterility_status = models.CharField(max_length=16, choices=SterilityStatus.choices, null=True, blank=True)
    # Item availability once the event is applied
    availability_status = models.CharField(max_length=16, choices=AvailabilityStatus.choices, null=True, blank=True)
    notes = models.CharField(max_length=1000, blank=True, default="")

    performed_by_id = models.BigIntegerField(null=True, blank=True)
    # Correlates with a scanner/device read when the event came from one
    device_event_id = models.CharField(max_length=128, blank=True, default="")

    # Server clock; history is ordered by this
    occurred_at = models.DateTimeField(default=timezone.now, db_index=True)
    # Device clock as reported by the scanner, informational only
    reported_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "inventory_event"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "inventory_item", "occurred_at"]),
            models.Index(fields=["surgical_case"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} @ {self.occurred_at}"

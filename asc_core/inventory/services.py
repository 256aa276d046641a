# asc_core/inventory/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from asc_core.audit.services import AuditService
from asc_core.catalog.models import CatalogItem
from asc_core.common.events import publish
from asc_core.common.exceptions import DomainValidationError, InvalidState, NotFound
from asc_core.inventory.models import (
    ADJUSTABLE_AVAILABILITY,
    RESERVATION_HOLDING_STATUSES,
    AvailabilityStatus,
    InventoryEvent,
    InventoryEventType,
    InventoryItem,
    MissingResolutionType,
    SterilityStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100
MAX_HISTORY_LIMIT = 500
MAX_BULK_EVENTS = 100


@dataclass(frozen=True)
class InventoryEventContext:
    """
    Caller-supplied details for one ledger entry. Unset fields fall back to the
    item's current state where the event needs them.

    reported_at is the device clock and is stored as-is; ordering and item
    timestamps always use the server clock.
    """
    case_id: UUID | None = None
    location_id: UUID | None = None
    previous_location_id: UUID | None = None
    sterility_status: str | None = None
    sterility_expires_at: datetime | None = None
    target_availability: str | None = None
    notes: str = ""
    performed_by_id: int | None = None
    device_event_id: str = ""
    reported_at: datetime | None = None


@dataclass(frozen=True)
class BulkInventoryEvent:
    item_id: UUID
    event_type: str
    context: InventoryEventContext = field(default_factory=InventoryEventContext)


def _history_limits() -> tuple[int, int]:
    return (
        int(getattr(settings, "ASC_INVENTORY_HISTORY_DEFAULT_LIMIT", DEFAULT_HISTORY_LIMIT)),
        int(getattr(settings, "ASC_INVENTORY_HISTORY_MAX_LIMIT", MAX_HISTORY_LIMIT)),
    )


def compute_item_update(item: InventoryItem, event_type: str, ctx: InventoryEventContext, *, now: datetime) -> dict:
    """
    Field changes an event applies to its item. RESERVED, RELEASED and
    MISSING_RESOLVED are conditional writes and are handled by the ledger.
    """
    if event_type == InventoryEventType.VERIFIED:
        return {"last_verified_at": now, "last_verified_by_id": ctx.performed_by_id}
    if event_type == InventoryEventType.LOCATION_CHANGED:
        return {"location_id": ctx.location_id} if ctx.location_id else {}
    if event_type == InventoryEventType.CONSUMED:
        return {"availability_status": AvailabilityStatus.UNAVAILABLE, "reserved_for_case_id": None}
    if event_type == InventoryEventType.EXPIRED:
        return {"sterility_status": SterilityStatus.EXPIRED}
    if event_type == InventoryEventType.RECEIVED:
        changes: dict = {"availability_status": AvailabilityStatus.AVAILABLE}
        if ctx.sterility_status:
            changes["sterility_status"] = ctx.sterility_status
        if ctx.sterility_expires_at:
            changes["sterility_expires_at"] = ctx.sterility_expires_at
        if ctx.location_id:
            changes["location_id"] = ctx.location_id
        return changes
    if event_type == InventoryEventType.ADJUSTED and ctx.target_availability:
        if item.availability_status == AvailabilityStatus.MISSING and ctx.target_availability != AvailabilityStatus.MISSING:
            raise InvalidState("Missing items are returned to stock with MISSING_RESOLVED.")
        return {"availability_status": ctx.target_availability, "reserved_for_case_id": None}
    # RETURNED, plain ADJUSTED: record only
    return {}


class InventoryLedger:
    """
    Single writer for inventory item state. Every state change is an InventoryEvent
    written in the same transaction as the item update.
    """

    @staticmethod
    def _lock_item(*, tenant_id: UUID, facility_id: UUID, item_id: UUID) -> InventoryItem:
        item = (
            InventoryItem.objects.select_for_update()
            .filter(id=item_id, tenant_id=tenant_id, facility_id=facility_id)
            .first()
        )
        if item is None:
            raise NotFound("Inventory item not found.")
        return item

    @staticmethod
    def _reservable_case(*, tenant_id: UUID, facility_id: UUID, case_id: UUID | None):
        from asc_core.cases.constants import TERMINAL_STATUSES
        from asc_core.cases.models import SurgicalCase

        if case_id is None:
            raise DomainValidationError("A case is required to reserve an item.")
        case = SurgicalCase.objects.filter(id=case_id, tenant_id=tenant_id, facility_id=facility_id).first()
        if case is None:
            raise DomainValidationError("Unknown case.", details={"case_id": str(case_id)})
        if case.is_cancelled or case.status in TERMINAL_STATUSES:
            raise InvalidState("Items cannot be reserved for a closed case.")
        return case

    @staticmethod
    def _compare_and_set(*, item: InventoryItem, allowed: Q, changes: dict, refusal: str, event_type: str) -> None:
        """
        Conditional write at the storage layer: the UPDATE only matches while the
        item is still in one of the allowed states.
        """
        updated = (
            InventoryItem.objects.filter(id=item.id)
            .filter(allowed)
            .update(**changes, updated_at=timezone.now())
        )
        if updated != 1:
            logger.info(
                "%s refused for item %s: availability=%s reserved_for=%s",
                event_type,
                item.id,
                item.availability_status,
                item.reserved_for_case_id,
            )
            raise InvalidState(
                refusal,
                details={
                    "item_id": str(item.id),
                    "availability_status": item.availability_status,
                },
            )
        for name, value in changes.items():
            setattr(item, name, value)

    @staticmethod
    def _validate_context(event_type: str, ctx: InventoryEventContext) -> None:
        if event_type not in InventoryEventType.values:
            raise DomainValidationError("Unknown inventory event type.", details={"event_type": event_type})
        if ctx.sterility_status and ctx.sterility_status not in SterilityStatus.values:
            raise DomainValidationError("Unknown sterility status.", details={"sterility_status": ctx.sterility_status})
        if ctx.target_availability:
            if event_type != InventoryEventType.ADJUSTED:
                raise DomainValidationError("Only ADJUSTED events carry a target availability.")
            if ctx.target_availability not in ADJUSTABLE_AVAILABILITY:
                raise DomainValidationError(
                    "Unsupported target availability.",
                    details={"target_availability": ctx.target_availability},
                )

    @staticmethod
    @transaction.atomic
    def record_event(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        event_type: str,
        context: InventoryEventContext | None = None,
    ) -> InventoryEvent:
        ctx = context or InventoryEventContext()
        InventoryLedger._validate_context(event_type, ctx)

        item = InventoryLedger._lock_item(tenant_id=tenant_id, facility_id=facility_id, item_id=item_id)
        occurred_at = timezone.now()

        # Snapshot before mutation
        previous_location_id = ctx.previous_location_id or item.location_id
        previous_sterility = item.sterility_status
        case_id = ctx.case_id

        if event_type == InventoryEventType.RESERVED:
            InventoryLedger._reservable_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
            InventoryLedger._compare_and_set(
                item=item,
                allowed=(
                    Q(availability_status=AvailabilityStatus.AVAILABLE, reserved_for_case__isnull=True)
                    | Q(availability_status=AvailabilityStatus.RESERVED, reserved_for_case_id=case_id)
                ),
                changes={"availability_status": AvailabilityStatus.RESERVED, "reserved_for_case_id": case_id},
                refusal="Item is not available for reservation.",
                event_type=event_type,
            )
        elif event_type == InventoryEventType.RELEASED:
            case_id = case_id or item.reserved_for_case_id
            InventoryLedger._compare_and_set(
                item=item,
                allowed=Q(reserved_for_case__isnull=False, availability_status__in=RESERVATION_HOLDING_STATUSES),
                changes={"availability_status": AvailabilityStatus.AVAILABLE, "reserved_for_case_id": None},
                refusal="Item is not reserved.",
                event_type=event_type,
            )
        elif event_type == InventoryEventType.MISSING_RESOLVED:
            InventoryLedger._compare_and_set(
                item=item,
                allowed=Q(availability_status=AvailabilityStatus.MISSING),
                changes={"availability_status": AvailabilityStatus.AVAILABLE},
                refusal="Item is not currently missing.",
                event_type=event_type,
            )
        else:
            if case_id is None and event_type in (InventoryEventType.CONSUMED, InventoryEventType.ADJUSTED):
                case_id = item.reserved_for_case_id
            changes = compute_item_update(item, event_type, ctx, now=occurred_at)
            if changes:
                for name, value in changes.items():
                    setattr(item, name, value)
                item.save(update_fields=[*changes, "updated_at"])

        event = InventoryEvent.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            inventory_item=item,
            event_type=event_type,
            surgical_case_id=case_id,
            location_id=ctx.location_id,
            previous_location_id=previous_location_id,
            sterility_status=ctx.sterility_status or previous_sterility,
            availability_status=item.availability_status,
            notes=ctx.notes,
            performed_by_id=ctx.performed_by_id,
            device_event_id=ctx.device_event_id,
            occurred_at=occurred_at,
            reported_at=ctx.reported_at,
        )

        logger.info("Inventory event %s recorded for item %s (case=%s)", event_type, item.id, case_id)
        publish(
            "inventory.event_recorded",
            {
                "tenant_id": str(tenant_id),
                "facility_id": str(facility_id),
                "item_id": str(item.id),
                "event_id": str(event.id),
                "event_type": event_type,
                "occurred_at": occurred_at.isoformat(),
                "case_id": str(case_id) if case_id else None,
            },
        )
        return event

    @staticmethod
    @transaction.atomic
    def record_events_bulk(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        events: Sequence[BulkInventoryEvent],
    ) -> list[InventoryEvent]:
        """
        Record a batch of events in order. All or nothing: every item must exist
        in scope before anything is written, and any refused event rolls back
        the whole batch.
        """
        max_events = int(getattr(settings, "ASC_INVENTORY_BULK_MAX_EVENTS", MAX_BULK_EVENTS))
        if not events:
            raise DomainValidationError("At least one event is required.")
        if len(events) > max_events:
            raise DomainValidationError(f"At most {max_events} events per batch.", details={"count": len(events)})

        for entry in events:
            InventoryLedger._validate_context(entry.event_type, entry.context)

        wanted = {entry.item_id for entry in events}
        found = set(
            InventoryItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id, id__in=wanted).values_list(
                "id", flat=True
            )
        )
        missing = sorted(str(i) for i in wanted - found)
        if missing:
            raise DomainValidationError("Some inventory items were not found.", details={"missing_item_ids": missing})

        recorded = [
            InventoryLedger.record_event(
                tenant_id=tenant_id,
                facility_id=facility_id,
                item_id=entry.item_id,
                event_type=entry.event_type,
                context=entry.context,
            )
            for entry in events
        ]
        logger.info("Recorded %s inventory events in one batch", len(recorded))
        return recorded

    @staticmethod
    def reserve(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        case_id: UUID,
        performed_by_id: int | None = None,
        notes: str = "",
    ) -> InventoryEvent:
        return InventoryLedger.record_event(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item_id,
            event_type=InventoryEventType.RESERVED,
            context=InventoryEventContext(case_id=case_id, performed_by_id=performed_by_id, notes=notes),
        )

    @staticmethod
    def release(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        performed_by_id: int | None = None,
        notes: str = "",
    ) -> InventoryEvent:
        return InventoryLedger.record_event(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item_id,
            event_type=InventoryEventType.RELEASED,
            context=InventoryEventContext(performed_by_id=performed_by_id, notes=notes),
        )

    @staticmethod
    def mark_missing(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        performed_by_id: int | None = None,
        notes: str = "",
    ) -> InventoryEvent:
        return InventoryLedger.record_event(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item_id,
            event_type=InventoryEventType.ADJUSTED,
            context=InventoryEventContext(
                target_availability=AvailabilityStatus.MISSING,
                performed_by_id=performed_by_id,
                notes=notes,
            ),
        )

    @staticmethod
    @transaction.atomic
    def resolve_missing(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        resolution_type: str,
        performed_by_id: int | None = None,
        notes: str = "",
    ) -> InventoryEvent:
        """
        Return a MISSING item to stock and record how it was resolved.
        """
        if resolution_type not in MissingResolutionType.values:
            raise DomainValidationError("Unknown resolution type.", details={"resolution_type": resolution_type})

        text = f"[RESOLVED] {resolution_type}: {notes}" if notes else f"[RESOLVED] {resolution_type}"
        event = InventoryLedger.record_event(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item_id,
            event_type=InventoryEventType.MISSING_RESOLVED,
            context=InventoryEventContext(performed_by_id=performed_by_id, notes=text[:1000]),
        )
        AuditService.log(
            event_code="inventory.missing_resolved",
            entity_type="InventoryItem",
            entity_id=item_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=performed_by_id,
            metadata={"resolution_type": resolution_type, "event_id": str(event.id)},
        )
        return event

    @staticmethod
    @transaction.atomic
    def release_all_for_case(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        case_id: UUID,
        performed_by_id: int | None = None,
        notes: str = "",
    ) -> list[UUID]:
        """
        Release every item reserved for the case. Returns the released item ids.
        """
        item_ids = list(
            InventoryItem.objects.filter(
                tenant_id=tenant_id,
                facility_id=facility_id,
                reserved_for_case_id=case_id,
            )
            .order_by("id")
            .values_list("id", flat=True)
        )
        for item_id in item_ids:
            InventoryLedger.record_event(
                tenant_id=tenant_id,
                facility_id=facility_id,
                item_id=item_id,
                event_type=InventoryEventType.RELEASED,
                context=InventoryEventContext(case_id=case_id, performed_by_id=performed_by_id, notes=notes),
            )
        return item_ids

    @staticmethod
    @transaction.atomic
    def create_item(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        catalog_item_id: UUID,
        performed_by_id: int | None = None,
        serial_number: str = "",
        lot_number: str = "",
        barcode: str = "",
        location_id: UUID | None = None,
        sterility_status: str = SterilityStatus.UNKNOWN,
        sterility_expires_at: datetime | None = None,
    ) -> InventoryItem:
        """
        Register a physical unit and write its RECEIVED entry.
        """
        if not CatalogItem.objects.filter(id=catalog_item_id, tenant_id=tenant_id, facility_id=facility_id).exists():
            raise DomainValidationError("Unknown catalog item.", details={"catalog_item_id": str(catalog_item_id)})

        item = InventoryItem.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            catalog_item_id=catalog_item_id,
            serial_number=serial_number,
            lot_number=lot_number,
            barcode=barcode,
        )
        InventoryLedger.record_event(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item.id,
            event_type=InventoryEventType.RECEIVED,
            context=InventoryEventContext(
                location_id=location_id,
                sterility_status=sterility_status,
                sterility_expires_at=sterility_expires_at,
                performed_by_id=performed_by_id,
            ),
        )
        AuditService.log(
            event_code="inventory.item_created",
            entity_type="InventoryItem",
            entity_id=item.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=performed_by_id,
            metadata={"catalog_item_id": str(catalog_item_id)},
        )
        item.refresh_from_db()
        return item

    @staticmethod
    def history(*, tenant_id: UUID, facility_id: UUID, item_id: UUID, limit: int | None = None) -> list[InventoryEvent]:
        """
        Events for an item, newest first. Read-only.
        """
        default_limit, max_limit = _history_limits()
        if not InventoryItem.objects.filter(id=item_id, tenant_id=tenant_id, facility_id=facility_id).exists():
            raise NotFound("Inventory item not found.")

        n = max(1, min(int(limit or default_limit), max_limit))
        return list(
            InventoryEvent.objects.filter(tenant_id=tenant_id, facility_id=facility_id, inventory_item_id=item_id)
            .order_by("-occurred_at", "-created_at", "-id")[:n]
        )

# asc_core/inventory/tests/test_inventory_ledger.py
import uuid
from datetime import timedelta

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from asc_core.cases.services import CaseService
from asc_core.common.exceptions import DomainValidationError, InvalidState, NotFound
from asc_core.inventory.models import (
    AvailabilityStatus,
    InventoryEvent,
    InventoryEventType,
    MissingResolutionType,
    SterilityStatus,
)
from asc_core.inventory.services import BulkInventoryEvent, InventoryEventContext, InventoryLedger

pytestmark = pytest.mark.django_db


@pytest.fixture
def scope(tenant, facility):
    return {"tenant_id": tenant.id, "facility_id": facility.id}


def test_create_item_writes_received_event(scope, user, catalog_items, captured_events):
    location = uuid.uuid4()
    item = InventoryLedger.create_item(
        **scope,
        catalog_item_id=catalog_items[0].id,
        performed_by_id=user.id,
        barcode="0100012345",
        location_id=location,
        sterility_status=SterilityStatus.STERILE,
    )

    assert item.availability_status == AvailabilityStatus.AVAILABLE
    assert item.location_id == location
    assert item.sterility_status == SterilityStatus.STERILE
    [event] = InventoryEvent.objects.filter(inventory_item=item)
    assert event.event_type == InventoryEventType.RECEIVED
    assert event.performed_by_id == user.id
    assert captured_events["inventory.event_recorded"][0]["event_type"] == InventoryEventType.RECEIVED


def test_create_item_rejects_unknown_catalog_item(scope):
    with pytest.raises(DomainValidationError):
        InventoryLedger.create_item(**scope, catalog_item_id=uuid.uuid4())


def test_verified_and_location_events_update_item(scope, user, catalog_items, stock):
    [item] = stock(catalog_items[0])
    old_location = item.location_id
    new_location = uuid.uuid4()

    InventoryLedger.record_event(
        **scope,
        item_id=item.id,
        event_type=InventoryEventType.VERIFIED,
        context=InventoryEventContext(performed_by_id=user.id, device_event_id="scan-1"),
    )
    moved = InventoryLedger.record_event(
        **scope,
        item_id=item.id,
        event_type=InventoryEventType.LOCATION_CHANGED,
        context=InventoryEventContext(location_id=new_location),
    )

    item.refresh_from_db()
    assert item.last_verified_at is not None
    assert item.last_verified_by_id == user.id
    assert item.location_id == new_location
    assert moved.previous_location_id == old_location


def test_expired_consumed_and_record_only_events(scope, catalog_items, stock, make_case):
    case = make_case()
    [item] = stock(catalog_items[0])

    InventoryLedger.record_event(**scope, item_id=item.id, event_type=InventoryEventType.EXPIRED)
    item.refresh_from_db()
    assert item.sterility_status == SterilityStatus.EXPIRED

    InventoryLedger.record_event(**scope, item_id=item.id, event_type=InventoryEventType.ADJUSTED)
    item.refresh_from_db()
    assert item.sterility_status == SterilityStatus.EXPIRED

    InventoryLedger.reserve(**scope, item_id=item.id, case_id=case.id)
    consumed = InventoryLedger.record_event(**scope, item_id=item.id, event_type=InventoryEventType.CONSUMED)
    item.refresh_from_db()
    assert item.availability_status == AvailabilityStatus.UNAVAILABLE
    assert item.reserved_for_case_id is None
    assert consumed.surgical_case_id == case.id


def test_unknown_event_type_and_missing_item(scope, catalog_items, stock):
    [item] = stock(catalog_items[0])
    with pytest.raises(DomainValidationError):
        InventoryLedger.record_event(**scope, item_id=item.id, event_type="TELEPORTED")
    with pytest.raises(NotFound):
        InventoryLedger.record_event(**scope, item_id=uuid.uuid4(), event_type=InventoryEventType.VERIFIED)


def test_item_held_by_one_case_cannot_be_reserved_by_another(scope, catalog_items, stock, make_case):
    first, second = make_case(), make_case()
    [item] = stock(catalog_items[0])

    InventoryLedger.reserve(**scope, item_id=item.id, case_id=first.id)
    # Re-reserving for the holder is accepted
    InventoryLedger.reserve(**scope, item_id=item.id, case_id=first.id)

    with pytest.raises(InvalidState):
        InventoryLedger.reserve(**scope, item_id=item.id, case_id=second.id)

    item.refresh_from_db()
    assert item.availability_status == AvailabilityStatus.RESERVED
    assert item.reserved_for_case_id == first.id
    assert InventoryEvent.objects.filter(inventory_item=item, event_type=InventoryEventType.RESERVED).count() == 2


def test_reservation_requires_an_open_case(scope, user, catalog_items, stock, make_case):
    [item] = stock(catalog_items[0])
    with pytest.raises(DomainValidationError):
        InventoryLedger.reserve(**scope, item_id=item.id, case_id=uuid.uuid4())

    case = make_case()
    CaseService.cancel(**scope, actor_user_id=user.id, case_id=case.id)
    with pytest.raises(InvalidState):
        InventoryLedger.reserve(**scope, item_id=item.id, case_id=case.id)


def test_release_frees_item_and_records_case(scope, catalog_items, stock, make_case):
    case = make_case()
    [item] = stock(catalog_items[0])
    InventoryLedger.reserve(**scope, item_id=item.id, case_id=case.id)

    event = InventoryLedger.release(**scope, item_id=item.id)

    item.refresh_from_db()
    assert item.availability_status == AvailabilityStatus.AVAILABLE
    assert item.reserved_for_case_id is None
    assert event.surgical_case_id == case.id


def test_history_is_newest_first_and_clamped(scope, catalog_items, stock, settings):
    settings.ASC_INVENTORY_HISTORY_DEFAULT_LIMIT = 3
    settings.ASC_INVENTORY_HISTORY_MAX_LIMIT = 4
    [item] = stock(catalog_items[0])
    for i in range(5):
        InventoryLedger.record_event(
            **scope,
            item_id=item.id,
            event_type=InventoryEventType.VERIFIED,
            context=InventoryEventContext(notes=f"scan {i}"),
        )

    default = InventoryLedger.history(**scope, item_id=item.id)
    assert [e.notes for e in default] == ["scan 4", "scan 3", "scan 2"]

    assert len(InventoryLedger.history(**scope, item_id=item.id, limit=1000)) == 4
    assert len(InventoryLedger.history(**scope, item_id=item.id, limit=0)) == 3
    assert len(InventoryLedger.history(**scope, item_id=item.id, limit=-5)) == 1

    with pytest.raises(NotFound):
        InventoryLedger.history(**scope, item_id=uuid.uuid4())


def test_events_are_append_only(catalog_items, stock):
    [item] = stock(catalog_items[0])
    event = InventoryEvent.objects.filter(inventory_item=item).first()

    event.notes = "edited"
    with pytest.raises(ValidationError):
        event.save()
    with pytest.raises(ValidationError):
        event.delete()


def test_device_clock_never_orders_history_or_verification(scope, catalog_items, stock):
    [item] = stock(catalog_items[0])
    before = timezone.now()
    device_time = before - timedelta(days=400)

    event = InventoryLedger.record_event(
        **scope,
        item_id=item.id,
        event_type=InventoryEventType.VERIFIED,
        context=InventoryEventContext(reported_at=device_time),
    )

    assert event.reported_at == device_time
    assert event.occurred_at >= before
    assert InventoryLedger.history(**scope, item_id=item.id)[0].event_type == InventoryEventType.VERIFIED
    item.refresh_from_db()
    assert item.last_verified_at >= before


def test_release_requires_a_held_reservation(scope, catalog_items, stock, make_case):
    case = make_case()
    free, used = stock(catalog_items[0], count=2)

    with pytest.raises(InvalidState):
        InventoryLedger.release(**scope, item_id=free.id)

    InventoryLedger.reserve(**scope, item_id=used.id, case_id=case.id)
    InventoryLedger.record_event(**scope, item_id=used.id, event_type=InventoryEventType.CONSUMED)
    with pytest.raises(InvalidState):
        InventoryLedger.release(**scope, item_id=used.id)

    used.refresh_from_db()
    assert used.availability_status == AvailabilityStatus.UNAVAILABLE
    assert not InventoryEvent.objects.filter(inventory_item=used, event_type=InventoryEventType.RELEASED).exists()


def test_event_snapshots_sterility_before_the_change(scope, catalog_items, stock):
    [item] = stock(catalog_items[0])

    expired = InventoryLedger.record_event(**scope, item_id=item.id, event_type=InventoryEventType.EXPIRED)

    assert expired.sterility_status == SterilityStatus.STERILE
    assert expired.availability_status == AvailabilityStatus.AVAILABLE
    item.refresh_from_db()
    assert item.sterility_status == SterilityStatus.EXPIRED


def test_missing_item_flow(scope, user, catalog_items, stock, make_case):
    case = make_case()
    [item] = stock(catalog_items[0])
    InventoryLedger.reserve(**scope, item_id=item.id, case_id=case.id)

    flagged = InventoryLedger.mark_missing(**scope, item_id=item.id, notes="Not found during cycle count")
    item.refresh_from_db()
    assert item.availability_status == AvailabilityStatus.MISSING
    assert item.reserved_for_case_id is None
    assert flagged.event_type == InventoryEventType.ADJUSTED
    assert flagged.surgical_case_id == case.id

    # Only a resolution brings it back
    with pytest.raises(InvalidState):
        InventoryLedger.record_event(
            **scope,
            item_id=item.id,
            event_type=InventoryEventType.ADJUSTED,
            context=InventoryEventContext(target_availability=AvailabilityStatus.AVAILABLE),
        )
    with pytest.raises(DomainValidationError):
        InventoryLedger.resolve_missing(**scope, item_id=item.id, resolution_type="SHRUG")

    resolved = InventoryLedger.resolve_missing(
        **scope,
        item_id=item.id,
        resolution_type=MissingResolutionType.LOCATED,
        performed_by_id=user.id,
        notes="Found in sterile core",
    )
    item.refresh_from_db()
    assert item.availability_status == AvailabilityStatus.AVAILABLE
    assert resolved.notes == "[RESOLVED] LOCATED: Found in sterile core"

    with pytest.raises(InvalidState):
        InventoryLedger.resolve_missing(**scope, item_id=item.id, resolution_type=MissingResolutionType.OTHER)


def test_target_availability_is_only_for_adjustments(scope, catalog_items, stock):
    [item] = stock(catalog_items[0])
    with pytest.raises(DomainValidationError):
        InventoryLedger.record_event(
            **scope,
            item_id=item.id,
            event_type=InventoryEventType.VERIFIED,
            context=InventoryEventContext(target_availability=AvailabilityStatus.MISSING),
        )
    with pytest.raises(DomainValidationError):
        InventoryLedger.record_event(
            **scope,
            item_id=item.id,
            event_type=InventoryEventType.ADJUSTED,
            context=InventoryEventContext(target_availability=AvailabilityStatus.RESERVED),
        )


def test_bulk_events_are_recorded_in_order(scope, catalog_items, stock):
    first, second = stock(catalog_items[0], count=2)

    recorded = InventoryLedger.record_events_bulk(
        **scope,
        events=[
            BulkInventoryEvent(item_id=first.id, event_type=InventoryEventType.VERIFIED),
            BulkInventoryEvent(item_id=second.id, event_type=InventoryEventType.VERIFIED),
            BulkInventoryEvent(item_id=first.id, event_type=InventoryEventType.EXPIRED),
        ],
    )

    assert [(e.inventory_item_id, e.event_type) for e in recorded] == [
        (first.id, InventoryEventType.VERIFIED),
        (second.id, InventoryEventType.VERIFIED),
        (first.id, InventoryEventType.EXPIRED),
    ]


def test_bulk_with_unknown_item_writes_nothing(scope, catalog_items, stock):
    [item] = stock(catalog_items[0])
    ghost = uuid.uuid4()
    before = InventoryEvent.objects.count()

    with pytest.raises(DomainValidationError) as exc:
        InventoryLedger.record_events_bulk(
            **scope,
            events=[
                BulkInventoryEvent(item_id=item.id, event_type=InventoryEventType.VERIFIED),
                BulkInventoryEvent(item_id=ghost, event_type=InventoryEventType.VERIFIED),
            ],
        )

    assert exc.value.details == {"missing_item_ids": [str(ghost)]}
    assert InventoryEvent.objects.count() == before

    with pytest.raises(DomainValidationError):
        InventoryLedger.record_events_bulk(**scope, events=[])


def test_bulk_refusal_rolls_back_earlier_entries(scope, catalog_items, stock, make_case):
    holder, other = make_case(), make_case()
    first, taken = stock(catalog_items[0], count=2)
    InventoryLedger.reserve(**scope, item_id=taken.id, case_id=holder.id)
    before = InventoryEvent.objects.count()

    with pytest.raises(InvalidState):
        InventoryLedger.record_events_bulk(
            **scope,
            events=[
                BulkInventoryEvent(item_id=first.id, event_type=InventoryEventType.VERIFIED),
                BulkInventoryEvent(
                    item_id=taken.id,
                    event_type=InventoryEventType.RESERVED,
                    context=InventoryEventContext(case_id=other.id),
                ),
            ],
        )

    first.refresh_from_db()
    assert first.last_verified_at is None
    assert InventoryEvent.objects.count() == before

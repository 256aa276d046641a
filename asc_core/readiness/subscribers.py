# asc_core/readiness/subscribers.py
from uuid import UUID

from asc_core.common.events import subscribe
from asc_core.readiness.services import ReadinessService


def _drop_cached(payload: dict) -> None:
    case_id = payload.get("case_id")
    ReadinessService.invalidate(
        tenant_id=UUID(payload["tenant_id"]),
        facility_id=UUID(payload["facility_id"]),
        case_id=UUID(case_id) if case_id else None,
    )


@subscribe("case.changed")
def on_case_changed(payload: dict) -> None:
    _drop_cached(payload)


@subscribe("checklist.changed")
def on_checklist_changed(payload: dict) -> None:
    _drop_cached(payload)


@subscribe("attestation.changed")
def on_attestation_changed(payload: dict) -> None:
    _drop_cached(payload)


@subscribe("inventory.event_recorded")
def on_inventory_event(payload: dict) -> None:
    # An unattached event (receipt, relocation) can change any case's readiness
    _drop_cached(payload)

# asc_core/readiness/engine.py
"""
Readiness evaluation.

`evaluate()` is a pure function of its input: no queries, no clock. The service layer
gathers one consistent snapshot into a ReadinessInput and hands it over.

State rules:
  RED    - a required item cannot be covered, or the latest readiness attestation was voided
  ORANGE - items covered but not all verified, no attestation yet, or a checklist left open
  GREEN  - none of the above
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence
from uuid import UUID

from asc_core.attestations.models import AttestationState
from asc_core.checklists.models import ChecklistKind, ChecklistStatus
from asc_core.inventory.models import AvailabilityStatus, SterilityStatus

GREEN = "GREEN"
ORANGE = "ORANGE"
RED = "RED"

SEVERITY_RED = "RED"
SEVERITY_ORANGE = "ORANGE"


class MissingReason:
    NOT_IN_INVENTORY = "NOT_IN_INVENTORY"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    NOT_LOCATABLE = "NOT_LOCATABLE"
    STERILITY_EXPIRED = "STERILITY_EXPIRED"
    NOT_STERILE = "NOT_STERILE"
    INSUFFICIENT_QUANTITY = "INSUFFICIENT_QUANTITY"
    NOT_VERIFIED = "NOT_VERIFIED"


class BlockerCode:
    MISSING_ITEMS = "MISSING_ITEMS"
    ATTESTATION_VOIDED = "ATTESTATION_VOIDED"
    ITEMS_UNVERIFIED = "ITEMS_UNVERIFIED"
    ATTESTATION_REQUIRED = "ATTESTATION_REQUIRED"
    CHECKLIST_IN_PROGRESS = "CHECKLIST_IN_PROGRESS"


@dataclass(frozen=True)
class ItemSnapshot:
    id: UUID
    catalog_item_id: UUID
    availability_status: str
    reserved_for_case_id: UUID | None
    location_id: UUID | None
    sterility_status: str
    sterility_expires_at: datetime | None
    last_verified_at: datetime | None


@dataclass(frozen=True)
class RequirementInput:
    catalog_item_id: UUID
    quantity: int
    # None when the catalog row is gone or out of scope
    catalog_name: str | None
    requires_sterility: bool = True


@dataclass(frozen=True)
class ReadinessInput:
    case_id: UUID
    # Sterility must hold through this instant
    cutoff: datetime
    requirements: Sequence[RequirementInput]
    inventory: Mapping[UUID, Sequence[ItemSnapshot]]
    attestation_state: str = AttestationState.NONE
    checklist_statuses: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MissingItem:
    catalog_item_id: UUID
    catalog_name: str
    required_quantity: int
    available_quantity: int
    reason: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "catalog_item_id": str(self.catalog_item_id),
            "catalog_name": self.catalog_name,
            "required_quantity": self.required_quantity,
            "available_quantity": self.available_quantity,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Blocker:
    code: str
    severity: str
    label: str
    action: str
    detail: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity,
            "label": self.label,
            "action": self.action,
            "detail": dict(sorted(self.detail.items())),
        }


@dataclass(frozen=True)
class ReadinessSignal:
    case_id: UUID
    state: str
    blockers: tuple[Blocker, ...]
    missing_items: tuple[MissingItem, ...]
    total_required: int
    total_verified: int
    attestation_state: str
    checklist_statuses: Mapping[str, str]

    @property
    def is_green(self) -> bool:
        return self.state == GREEN

    def as_dict(self) -> dict[str, Any]:
        return {
            "case_id": str(self.case_id),
            "state": self.state,
            "blockers": [b.as_dict() for b in self.blockers],
            "missing_items": [m.as_dict() for m in self.missing_items],
            "total_required": self.total_required,
            "total_verified": self.total_verified,
            "attestation_state": self.attestation_state,
            "checklist_statuses": dict(self.checklist_statuses),
        }


def _is_available(item: ItemSnapshot, case_id: UUID) -> bool:
    if item.availability_status == AvailabilityStatus.AVAILABLE:
        return True
    return item.availability_status == AvailabilityStatus.RESERVED and item.reserved_for_case_id == case_id


def _is_locatable(item: ItemSnapshot) -> bool:
    return item.location_id is not None


def _is_sterile_through(item: ItemSnapshot, cutoff: datetime) -> bool:
    if item.sterility_status != SterilityStatus.STERILE:
        return False
    return item.sterility_expires_at is None or item.sterility_expires_at >= cutoff


def _is_verified(item: ItemSnapshot) -> bool:
    return item.last_verified_at is not None


def _shortage_reason(
    items: Sequence[ItemSnapshot],
    *,
    required: int,
    case_id: UUID,
    requires_sterility: bool,
    cutoff: datetime,
) -> str:
    """
    Most telling reason a requirement cannot be covered. Each item is counted against
    the first check it fails.
    """
    if not items:
        return MissingReason.NOT_IN_INVENTORY

    not_available = not_locatable = not_sterile = expired = 0
    for item in items:
        if not _is_available(item, case_id):
            not_available += 1
        elif not _is_locatable(item):
            not_locatable += 1
        elif requires_sterility and item.sterility_status != SterilityStatus.STERILE:
            not_sterile += 1
        elif requires_sterility and item.sterility_expires_at is not None and item.sterility_expires_at < cutoff:
            expired += 1

    half = len(items) / 2
    if not_available and not_available >= half:
        return MissingReason.NOT_AVAILABLE
    if not_locatable and not_locatable >= half:
        return MissingReason.NOT_LOCATABLE
    if expired:
        return MissingReason.STERILITY_EXPIRED
    if not_sterile:
        return MissingReason.NOT_STERILE
    if len(items) < required:
        return MissingReason.INSUFFICIENT_QUANTITY
    return MissingReason.NOT_VERIFIED


def evaluate(data: ReadinessInput) -> ReadinessSignal:
    missing: list[MissingItem] = []
    total_required = 0
    total_verified = 0

    for req in sorted(data.requirements, key=lambda r: str(r.catalog_item_id)):
        total_required += req.quantity
        items = sorted(data.inventory.get(req.catalog_item_id, ()), key=lambda i: str(i.id))

        if req.catalog_name is None:
            missing.append(
                MissingItem(req.catalog_item_id, "[Unknown Item]", req.quantity, 0, MissingReason.NOT_IN_INVENTORY)
            )
            continue

        suitable = [
            i
            for i in items
            if _is_available(i, data.case_id)
            and _is_locatable(i)
            and (not req.requires_sterility or _is_sterile_through(i, data.cutoff))
        ]
        if len(suitable) < req.quantity:
            missing.append(
                MissingItem(
                    catalog_item_id=req.catalog_item_id,
                    catalog_name=req.catalog_name,
                    required_quantity=req.quantity,
                    available_quantity=len(suitable),
                    reason=_shortage_reason(
                        items,
                        required=req.quantity,
                        case_id=data.case_id,
                        requires_sterility=req.requires_sterility,
                        cutoff=data.cutoff,
                    ),
                )
            )
        else:
            total_verified += min(sum(1 for i in suitable if _is_verified(i)), req.quantity)

    blockers: list[Blocker] = []
    if missing:
        blockers.append(
            Blocker(
                code=BlockerCode.MISSING_ITEMS,
                severity=SEVERITY_RED,
                label=f"{len(missing)} required item(s) cannot be covered by inventory",
                action="inventory.resolve_missing",
                detail={"count": len(missing)},
            )
        )
    if data.attestation_state == AttestationState.VOIDED:
        blockers.append(
            Blocker(
                code=BlockerCode.ATTESTATION_VOIDED,
                severity=SEVERITY_RED,
                label="Readiness attestation was voided",
                action="attestation.reattest",
            )
        )
    if total_verified < total_required:
        blockers.append(
            Blocker(
                code=BlockerCode.ITEMS_UNVERIFIED,
                severity=SEVERITY_ORANGE,
                label=f"{total_required - total_verified} item(s) awaiting verification",
                action="inventory.verify",
                detail={"required": total_required, "verified": total_verified},
            )
        )
    if data.attestation_state == AttestationState.NONE:
        blockers.append(
            Blocker(
                code=BlockerCode.ATTESTATION_REQUIRED,
                severity=SEVERITY_ORANGE,
                label="Readiness has not been attested",
                action="attestation.attest",
            )
        )
    for kind in ChecklistKind.values:
        if data.checklist_statuses.get(kind) == ChecklistStatus.IN_PROGRESS:
            blockers.append(
                Blocker(
                    code=BlockerCode.CHECKLIST_IN_PROGRESS,
                    severity=SEVERITY_ORANGE,
                    label=f"{ChecklistKind(kind).label} checklist is not completed",
                    action="checklists.complete",
                    detail={"kind": kind},
                )
            )

    if any(b.severity == SEVERITY_RED for b in blockers):
        state = RED
    elif blockers:
        state = ORANGE
    else:
        state = GREEN

    return ReadinessSignal(
        case_id=data.case_id,
        state=state,
        blockers=tuple(blockers),
        missing_items=tuple(missing),
        total_required=total_required,
        total_verified=total_verified,
        attestation_state=data.attestation_state,
        checklist_statuses={k: data.checklist_statuses.get(k, ChecklistStatus.NOT_STARTED) for k in ChecklistKind.values},
    )

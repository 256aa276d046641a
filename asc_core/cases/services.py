# asc_core/cases/services.py
from __future__ import annotations

import logging
from typing import Any, Callable, Sequence
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from asc_core.audit.services import AuditService
from asc_core.cases.case_numbers import allocate_case_number
from asc_core.cases.commands import (
    MAX_DURATION_MINUTES,
    MAX_REASON_LENGTH,
    MIN_DURATION_MINUTES,
    ActivateCaseCommand,
    ApproveCaseCommand,
    CancelCaseCommand,
    CreateCaseCommand,
    RejectCaseCommand,
    RequirementItem,
    UpdateCaseCommand,
)
from asc_core.cases.constants import CLINICAL_LOCKED_STATUSES, TERMINAL_STATUSES, UPDATE_TRANSITIONS
from asc_core.cases.models import CaseRequirement, CaseStatus, CaseStatusEvent, SurgicalCase
from asc_core.cases.requirements import RequirementSynchronizer
from asc_core.checklists.models import ChecklistInstance, ChecklistStatus
from asc_core.common.events import publish
from asc_core.common.exceptions import (
    DebriefRequired,
    DomainValidationError,
    Forbidden,
    InvalidState,
    NotFound,
    TimeoutRequired,
)
from asc_core.iam.capabilities import Capability, has_capability
from asc_core.iam.services.membership import is_user_member_of_facility
from asc_core.inventory.services import InventoryLedger
from asc_core.preference_cards.models import PreferenceCard, PreferenceCardVersion
from asc_core.readiness.models import ReadinessCache
from asc_core.readiness.services import ReadinessService

logger = logging.getLogger(__name__)

EMPTY_CAPABILITIES: frozenset[str] = frozenset()


def _check_duration(value: int | None) -> None:
    if value is None:
        return
    if not (MIN_DURATION_MINUTES <= int(value) <= MAX_DURATION_MINUTES):
        raise DomainValidationError(
            f"Estimated duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.",
            details={"estimated_duration_minutes": value},
        )


def _clean_reason(reason: str | None, *, required: bool) -> str:
    reason = (reason or "").strip()
    if required and not reason:
        raise DomainValidationError("A reason is required.")
    if len(reason) > MAX_REASON_LENGTH:
        raise DomainValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters.")
    return reason


def _current_template_version(*, tenant_id: UUID, facility_id: UUID, card_id: UUID) -> PreferenceCardVersion | None:
    card = (
        PreferenceCard.objects.select_related("current_version")
        .filter(id=card_id, tenant_id=tenant_id, facility_id=facility_id)
        .first()
    )
    if card is None:
        raise DomainValidationError("Unknown preference card.", details={"preference_card_id": str(card_id)})
    return card.current_version


class CaseService:
    """
    Case lifecycle commands. Each one locks the case row, re-checks its precondition
    under the lock, writes a status event for any status change, audits and publishes
    `case.changed`.
    """

    @staticmethod
    def _lock_case(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> SurgicalCase:
        case = (
            SurgicalCase.objects.select_for_update()
            .filter(id=case_id, tenant_id=tenant_id, facility_id=facility_id)
            .first()
        )
        if case is None:
            raise NotFound("Case not found.")
        return case

    @staticmethod
    def _record_transition(
        *,
        case: SurgicalCase,
        from_status: str | None,
        to_status: str,
        actor_user_id: int | None,
        reason: str = "",
        context: dict | None = None,
    ) -> CaseStatusEvent:
        return CaseStatusEvent.objects.create(
            tenant_id=case.tenant_id,
            facility_id=case.facility_id,
            surgical_case=case,
            case_number=case.case_number,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            context=context or {},
            actor_user_id=actor_user_id,
        )

    @staticmethod
    def _after_mutation(
        *,
        case: SurgicalCase,
        action: str,
        actor_user_id: int | None,
        from_status: str | None = None,
        reason: str = "",
        metadata: dict | None = None,
    ) -> None:
        AuditService.log(
            event_code=f"case.{action}",
            entity_type="SurgicalCase",
            entity_id=case.id,
            tenant_id=case.tenant_id,
            facility_id=case.facility_id,
            actor_user_id=actor_user_id,
            metadata={
                "case_number": case.case_number,
                "from_status": from_status,
                "to_status": case.status,
                **(metadata or {}),
            },
        )
        logger.info("Case %s %s (%s -> %s) by user %s", case.case_number, action, from_status, case.status, actor_user_id)
        publish(
            "case.changed",
            {
                "tenant_id": str(case.tenant_id),
                "facility_id": str(case.facility_id),
                "case_id": str(case.id),
                "action": action,
                "from_status": from_status,
                "to_status": case.status,
                "actor_user_id": actor_user_id,
                "reason": reason,
                "occurred_at": timezone.now().isoformat(),
            },
        )

    # ---------------------------------------------------------------- create

    @staticmethod
    @transaction.atomic
    def create(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        command: CreateCaseCommand,
        capabilities: frozenset[str] = EMPTY_CAPABILITIES,
    ) -> SurgicalCase:
        procedure_name = (command.procedure_name or "").strip()
        if not procedure_name:
            raise DomainValidationError("Procedure name is required.")
        _check_duration(command.estimated_duration_minutes)

        if command.schedule_directly:
            if not has_capability(capabilities, Capability.CASE_SCHEDULE):
                raise Forbidden("Scheduling a case directly requires the scheduling capability.")
            if command.scheduled_date is None:
                raise DomainValidationError("A scheduled date is required to schedule a case directly.")

        if not is_user_member_of_facility(user_id=command.surgeon_id, tenant_id=tenant_id, facility_id=facility_id):
            raise DomainValidationError("Surgeon is not a member of this facility.", details={"surgeon_id": command.surgeon_id})

        version = None
        if command.preference_card_id:
            version = _current_template_version(
                tenant_id=tenant_id, facility_id=facility_id, card_id=command.preference_card_id
            )

        now = timezone.now()
        status = CaseStatus.SCHEDULED if command.schedule_directly else CaseStatus.REQUESTED

        case = SurgicalCase.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            case_number=allocate_case_number(facility_id=facility_id),
            surgeon_id=command.surgeon_id,
            procedure_name=procedure_name,
            laterality=command.laterality or "",
            requested_date=command.requested_date,
            requested_time=command.requested_time,
            scheduled_date=command.scheduled_date,
            scheduled_time=command.scheduled_time,
            room_id=command.room_id,
            estimated_duration_minutes=command.estimated_duration_minutes,
            preference_card_version=version,
            status=status,
            approved_at=now if command.schedule_directly else None,
            approved_by_id=actor_user_id if command.schedule_directly else None,
            notes=command.notes or "",
            created_by_id=actor_user_id,
        )

        if version is not None:
            RequirementSynchronizer.bind(case=case, version=version)

        CaseService._record_transition(
            case=case,
            from_status=None,
            to_status=status,
            actor_user_id=actor_user_id,
            context={"operation": "create"},
        )
        CaseService._after_mutation(case=case, action="created", actor_user_id=actor_user_id)
        return case

    # ---------------------------------------------------------------- approval

    @staticmethod
    @transaction.atomic
    def approve(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        command: ApproveCaseCommand,
    ) -> SurgicalCase:
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if case.status != CaseStatus.REQUESTED:
            raise InvalidState("Only requested cases can be approved.", details={"status": case.status})
        if command.scheduled_date is None:
            raise DomainValidationError("A scheduled date is required to approve a case.")
        _check_duration(command.estimated_duration_minutes)

        from_status = case.status
        case.scheduled_date = command.scheduled_date
        case.scheduled_time = command.scheduled_time
        if command.room_id is not None:
            case.room_id = command.room_id
        if command.estimated_duration_minutes is not None:
            case.estimated_duration_minutes = command.estimated_duration_minutes
        case.status = CaseStatus.SCHEDULED
        case.approved_at = timezone.now()
        case.approved_by_id = actor_user_id
        case.save()

        CaseService._record_transition(
            case=case,
            from_status=from_status,
            to_status=case.status,
            actor_user_id=actor_user_id,
            context={"operation": "approve"},
        )
        CaseService._after_mutation(case=case, action="approved", actor_user_id=actor_user_id, from_status=from_status)
        return case

    @staticmethod
    @transaction.atomic
    def reject(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        command: RejectCaseCommand,
    ) -> SurgicalCase:
        reason = _clean_reason(command.reason, required=True)
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if case.status != CaseStatus.REQUESTED:
            raise InvalidState("Only requested cases can be rejected.", details={"status": case.status})

        from_status = case.status
        case.status = CaseStatus.REJECTED
        case.rejected_at = timezone.now()
        case.rejected_by_id = actor_user_id
        case.rejection_reason = reason
        case.is_active = False
        case.save()

        CaseService._record_transition(
            case=case,
            from_status=from_status,
            to_status=case.status,
            actor_user_id=actor_user_id,
            reason=reason,
            context={"operation": "reject"},
        )
        CaseService._after_mutation(
            case=case, action="rejected", actor_user_id=actor_user_id, from_status=from_status, reason=reason
        )
        return case

    # ---------------------------------------------------------------- activation

    @staticmethod
    @transaction.atomic
    def activate(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        command: ActivateCaseCommand | None = None,
    ) -> SurgicalCase:
        command = command or ActivateCaseCommand()
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)

        if case.is_cancelled:
            raise InvalidState("Cancelled cases cannot be activated.")
        if case.is_active:
            raise InvalidState("Case is already active.")
        if case.status in TERMINAL_STATUSES:
            raise InvalidState("Closed cases cannot be activated.", details={"status": case.status})

        if command.scheduled_date is not None:
            case.scheduled_date = command.scheduled_date
        if command.scheduled_time is not None:
            case.scheduled_time = command.scheduled_time
        if case.scheduled_date is None:
            raise DomainValidationError("A scheduled date is required to activate a case.")

        from_status = case.status
        now = timezone.now()
        case.is_active = True
        case.activated_at = now
        case.activated_by_id = actor_user_id
        if case.status == CaseStatus.REQUESTED:
            case.status = CaseStatus.SCHEDULED
            case.approved_at = case.approved_at or now
            case.approved_by_id = case.approved_by_id or actor_user_id
        case.save()

        if case.status != from_status:
            CaseService._record_transition(
                case=case,
                from_status=from_status,
                to_status=case.status,
                actor_user_id=actor_user_id,
                context={"operation": "activate"},
            )
        CaseService._after_mutation(case=case, action="activated", actor_user_id=actor_user_id, from_status=from_status)
        return case

    @staticmethod
    @transaction.atomic
    def deactivate(*, tenant_id: UUID, facility_id: UUID, actor_user_id: int | None, case_id: UUID) -> SurgicalCase:
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if not case.is_active:
            raise InvalidState("Case is not active.")
        if case.status in CLINICAL_LOCKED_STATUSES:
            raise InvalidState("Cases in surgery or completed cannot be deactivated.", details={"status": case.status})

        case.is_active = False
        case.activated_at = None
        case.activated_by_id = None
        case.save(update_fields=["is_active", "activated_at", "activated_by", "updated_at"])

        CaseService._after_mutation(case=case, action="deactivated", actor_user_id=actor_user_id, from_status=case.status)
        return case

    # ---------------------------------------------------------------- update

    @staticmethod
    @transaction.atomic
    def update(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        command: UpdateCaseCommand,
        capabilities: frozenset[str] = EMPTY_CAPABILITIES,
    ) -> SurgicalCase:
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if case.is_cancelled or case.status in TERMINAL_STATUSES:
            raise InvalidState("Closed cases cannot be updated.", details={"status": case.status})

        changes = command.changes()
        if not changes:
            return case

        # validate everything before writing
        if "procedure_name" in changes:
            changes["procedure_name"] = (changes["procedure_name"] or "").strip()
            if not changes["procedure_name"]:
                raise DomainValidationError("Procedure name cannot be empty.")
        for text_field in ("laterality", "notes"):
            if text_field in changes and changes[text_field] is None:
                changes[text_field] = ""
        if "estimated_duration_minutes" in changes:
            _check_duration(changes["estimated_duration_minutes"])

        schedule_changed = [
            f for f in UpdateCaseCommand.SCHEDULE_FIELDS if f in changes and changes[f] != getattr(case, f)
        ]
        if schedule_changed and case.is_active and not has_capability(capabilities, Capability.CASE_SCHEDULE):
            raise Forbidden("Changing the schedule of an active case requires the scheduling capability.")
        if case.is_active and "scheduled_date" in changes and changes["scheduled_date"] is None:
            raise DomainValidationError("An active case must keep a scheduled date.")

        rebind = False
        version = None
        if "preference_card_id" in changes:
            if not has_capability(capabilities, Capability.CASE_PREFERENCE_CARD_LINK):
                raise Forbidden("Linking a preference card requires the preference card capability.")
            card_id = changes.pop("preference_card_id")
            if card_id:
                version = _current_template_version(tenant_id=tenant_id, facility_id=facility_id, card_id=card_id)
            rebind = True

        from_status = case.status
        new_status = changes.pop("status", case.status)
        if new_status != case.status:
            if new_status not in UPDATE_TRANSITIONS.get(case.status, frozenset()):
                raise InvalidState(
                    f"Status cannot change from {case.status} to {new_status} through an update.",
                    details={"from_status": case.status, "to_status": new_status},
                )
            if new_status == CaseStatus.IN_PROGRESS and not ReadinessService.can_start(
                tenant_id=tenant_id, facility_id=facility_id, case_id=case.id
            ):
                raise TimeoutRequired()
            if new_status == CaseStatus.COMPLETED and not ReadinessService.can_complete(
                tenant_id=tenant_id, facility_id=facility_id, case_id=case.id
            ):
                raise DebriefRequired()

        for field, value in changes.items():
            setattr(case, field, value)
        if rebind:
            case.preference_card_version = version
        case.status = new_status
        case.save()

        if rebind:
            RequirementSynchronizer.bind(case=case, version=version)

        if new_status != from_status:
            CaseService._record_transition(
                case=case,
                from_status=from_status,
                to_status=new_status,
                actor_user_id=actor_user_id,
                context={"operation": "update"},
            )

        CaseService._after_mutation(
            case=case,
            action="updated",
            actor_user_id=actor_user_id,
            from_status=from_status,
            metadata={"fields": sorted([*changes.keys(), *(["preference_card_version"] if rebind else [])])},
        )
        return case

    # ---------------------------------------------------------------- cancel / delete

    @staticmethod
    @transaction.atomic
    def cancel(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        command: CancelCaseCommand | None = None,
    ) -> SurgicalCase:
        command = command or CancelCaseCommand()
        reason = _clean_reason(command.reason, required=False)
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)

        if case.is_cancelled:
            raise InvalidState("Case is already cancelled.")
        if case.status in (CaseStatus.COMPLETED, CaseStatus.REJECTED):
            raise InvalidState("Closed cases cannot be cancelled.", details={"status": case.status})

        from_status = case.status
        case.status = CaseStatus.CANCELLED
        case.is_cancelled = True
        case.cancelled_at = timezone.now()
        case.cancelled_by_id = actor_user_id
        case.cancellation_reason = reason
        case.is_active = False
        if reason:
            case.notes = f"{case.notes}\nCancelled: {reason}" if case.notes else f"Cancelled: {reason}"
        case.save()

        released = InventoryLedger.release_all_for_case(
            tenant_id=tenant_id,
            facility_id=facility_id,
            case_id=case.id,
            performed_by_id=actor_user_id,
            notes=f"Case {case.case_number} cancelled",
        )

        CaseService._record_transition(
            case=case,
            from_status=from_status,
            to_status=case.status,
            actor_user_id=actor_user_id,
            reason=reason,
            context={"operation": "cancel", "released_items": len(released)},
        )
        CaseService._after_mutation(
            case=case,
            action="cancelled",
            actor_user_id=actor_user_id,
            from_status=from_status,
            reason=reason,
            metadata={"released_item_ids": [str(i) for i in released]},
        )
        return case

    @staticmethod
    def _delete_step(step: str, case_id: UUID, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception:
            logger.exception("Case deletion step %s failed for case %s", step, case_id)
            raise

    @staticmethod
    @transaction.atomic
    def delete(*, tenant_id: UUID, facility_id: UUID, actor_user_id: int | None, case_id: UUID) -> None:
        """
        Remove a case that never reached surgery. Status history, inventory events and
        attestations stay, with their case reference nulled.
        """
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if case.is_active:
            raise InvalidState("Active cases cannot be deleted. Deactivate the case first.")
        if case.status in CLINICAL_LOCKED_STATUSES:
            raise InvalidState("Cases in surgery or completed cannot be deleted.", details={"status": case.status})
        if ChecklistInstance.objects.filter(surgical_case=case, status=ChecklistStatus.COMPLETED).exists():
            raise InvalidState("Cases with completed checklists are part of the permanent record and cannot be deleted.")

        case_pk = case.id
        case_number = case.case_number
        status = case.status

        steps: Sequence[tuple[str, Callable[[], Any]]] = (
            (
                "release_reservations",
                lambda: InventoryLedger.release_all_for_case(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    case_id=case_pk,
                    performed_by_id=actor_user_id,
                    notes=f"Case {case_number} deleted",
                ),
            ),
            ("delete_requirements", lambda: CaseRequirement.objects.filter(surgical_case_id=case_pk).delete()),
            ("delete_checklists", lambda: ChecklistInstance.objects.filter(surgical_case_id=case_pk).delete()),
            ("delete_readiness_cache", lambda: ReadinessCache.objects.filter(surgical_case_id=case_pk).delete()),
            ("delete_case", lambda: case.delete()),
        )
        for step, fn in steps:
            CaseService._delete_step(step, case_pk, fn)

        AuditService.log(
            event_code="case.deleted",
            entity_type="SurgicalCase",
            entity_id=case_pk,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"case_number": case_number, "status": status},
        )
        logger.info("Case %s deleted by user %s", case_number, actor_user_id)
        publish(
            "case.changed",
            {
                "tenant_id": str(tenant_id),
                "facility_id": str(facility_id),
                "case_id": str(case_pk),
                "action": "deleted",
                "from_status": status,
                "to_status": None,
                "actor_user_id": actor_user_id,
                "reason": "",
                "occurred_at": timezone.now().isoformat(),
            },
        )

    # ---------------------------------------------------------------- requirements

    @staticmethod
    @transaction.atomic
    def set_requirements(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        items: Sequence[RequirementItem],
        is_override: bool = True,
        capabilities: frozenset[str] = EMPTY_CAPABILITIES,
    ) -> list[CaseRequirement]:
        case = CaseService._lock_case(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if case.is_cancelled or case.status in TERMINAL_STATUSES:
            raise InvalidState("Requirements of closed cases cannot be changed.", details={"status": case.status})

        is_surgeon = actor_user_id is not None and actor_user_id == case.surgeon_id
        if not is_surgeon and not has_capability(capabilities, Capability.CASE_REQUIREMENTS_OVERRIDE):
            raise Forbidden("Only the case surgeon or an administrator can change case requirements.")

        rows = RequirementSynchronizer.set_overrides(case=case, items=items, is_override=is_override)

        CaseService._after_mutation(
            case=case,
            action="requirements_changed",
            actor_user_id=actor_user_id,
            from_status=case.status,
            metadata={"is_override": is_override, "item_count": len(items)},
        )
        return rows

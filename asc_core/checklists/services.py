# asc_core/checklists/services.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from asc_core.audit.services import AuditService
from asc_core.cases.models import CaseStatus, SurgicalCase
from asc_core.checklists.models import ChecklistInstance, ChecklistKind, ChecklistStatus
from asc_core.common.events import publish
from asc_core.common.exceptions import DomainValidationError, InvalidState, NotFound

logger = logging.getLogger(__name__)

# Case status a checklist kind runs in
_REQUIRED_CASE_STATUS = {
    ChecklistKind.TIMEOUT: CaseStatus.SCHEDULED,
    ChecklistKind.DEBRIEF: CaseStatus.IN_PROGRESS,
}


class ChecklistService:
    @staticmethod
    def status(*, tenant_id: UUID, facility_id: UUID, case_id: UUID, kind: str) -> str:
        """
        Current status for the case's checklist of `kind`; NOT_STARTED when none exists.
        """
        value = (
            ChecklistInstance.objects.filter(
                tenant_id=tenant_id,
                facility_id=facility_id,
                surgical_case_id=case_id,
                kind=kind,
            )
            .values_list("status", flat=True)
            .first()
        )
        return value or ChecklistStatus.NOT_STARTED

    @staticmethod
    def statuses(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> Dict[str, str]:
        found = dict(
            ChecklistInstance.objects.filter(
                tenant_id=tenant_id, facility_id=facility_id, surgical_case_id=case_id
            ).values_list("kind", "status")
        )
        return {kind: found.get(kind, ChecklistStatus.NOT_STARTED) for kind in ChecklistKind.values}

    @staticmethod
    def _lock_runnable_case(*, tenant_id: UUID, facility_id: UUID, case_id: UUID, kind: str) -> SurgicalCase:
        if kind not in ChecklistKind.values:
            raise DomainValidationError("Unknown checklist kind.", details={"kind": kind})

        case = (
            SurgicalCase.objects.select_for_update()
            .filter(id=case_id, tenant_id=tenant_id, facility_id=facility_id)
            .first()
        )
        if case is None:
            raise NotFound("Case not found.")
        if case.is_cancelled or not case.is_active:
            raise InvalidState("Checklists can only be run on active cases.")

        expected = _REQUIRED_CASE_STATUS[kind]
        if case.status != expected:
            raise InvalidState(
                f"{kind} checklist requires the case to be {expected}.",
                details={"status": case.status},
            )
        if kind == ChecklistKind.DEBRIEF:
            timeout_status = ChecklistService.status(
                tenant_id=tenant_id, facility_id=facility_id, case_id=case.id, kind=ChecklistKind.TIMEOUT
            )
            if timeout_status != ChecklistStatus.COMPLETED:
                raise InvalidState("The timeout checklist must be completed before the debrief.")
        return case

    @staticmethod
    def _changed(instance: ChecklistInstance, *, actor_user_id: int | None, event_code: str) -> None:
        AuditService.log(
            event_code=event_code,
            entity_type="ChecklistInstance",
            entity_id=instance.id,
            tenant_id=instance.tenant_id,
            facility_id=instance.facility_id,
            actor_user_id=actor_user_id,
            metadata={"case_id": str(instance.surgical_case_id), "kind": instance.kind, "status": instance.status},
        )
        publish(
            "checklist.changed",
            {
                "tenant_id": str(instance.tenant_id),
                "facility_id": str(instance.facility_id),
                "case_id": str(instance.surgical_case_id),
                "kind": instance.kind,
                "status": instance.status,
            },
        )

    @staticmethod
    @transaction.atomic
    def start(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        kind: str,
    ) -> ChecklistInstance:
        case = ChecklistService._lock_runnable_case(
            tenant_id=tenant_id, facility_id=facility_id, case_id=case_id, kind=kind
        )
        instance, _ = ChecklistInstance.objects.get_or_create(
            surgical_case=case,
            kind=kind,
            defaults={"tenant_id": tenant_id, "facility_id": facility_id},
        )
        if instance.status == ChecklistStatus.COMPLETED:
            raise InvalidState(f"{kind} checklist is already completed.")
        if instance.status == ChecklistStatus.IN_PROGRESS:
            return instance

        instance.status = ChecklistStatus.IN_PROGRESS
        instance.started_at = timezone.now()
        instance.started_by_id = actor_user_id
        instance.save(update_fields=["status", "started_at", "started_by", "updated_at"])

        logger.info("%s checklist started for case %s", kind, case.case_number)
        ChecklistService._changed(instance, actor_user_id=actor_user_id, event_code="checklist.started")
        return instance

    @staticmethod
    @transaction.atomic
    def complete(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        case_id: UUID,
        kind: str,
        responses: Optional[Dict[str, Any]] = None,
    ) -> ChecklistInstance:
        if responses is not None and not isinstance(responses, dict):
            raise DomainValidationError("Checklist responses must be an object.")

        case = ChecklistService._lock_runnable_case(
            tenant_id=tenant_id, facility_id=facility_id, case_id=case_id, kind=kind
        )
        instance, _ = ChecklistInstance.objects.get_or_create(
            surgical_case=case,
            kind=kind,
            defaults={"tenant_id": tenant_id, "facility_id": facility_id},
        )
        if instance.status == ChecklistStatus.COMPLETED:
            raise InvalidState(f"{kind} checklist is already completed.")

        now = timezone.now()
        if instance.started_at is None:
            instance.started_at = now
            instance.started_by_id = actor_user_id
        instance.status = ChecklistStatus.COMPLETED
        instance.responses = responses or {}
        instance.completed_at = now
        instance.completed_by_id = actor_user_id
        instance.save()

        logger.info("%s checklist completed for case %s", kind, case.case_number)
        ChecklistService._changed(instance, actor_user_id=actor_user_id, event_code="checklist.completed")
        return instance

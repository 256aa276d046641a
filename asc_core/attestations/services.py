# asc_core/attestations/services.py
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from asc_core.attestations.models import Attestation, AttestationState, AttestationType
from asc_core.audit.services import AuditService
from asc_core.cases.models import CaseStatus, SurgicalCase
from asc_core.common.events import publish
from asc_core.common.exceptions import DomainValidationError, Forbidden, InvalidState, NotFound
from asc_core.iam.capabilities import Capability, has_capability

logger = logging.getLogger(__name__)

MAX_VOID_REASON_LENGTH = 500


def _publish_changed(attestation: Attestation) -> None:
    publish(
        "attestation.changed",
        {
            "tenant_id": str(attestation.tenant_id),
            "facility_id": str(attestation.facility_id),
            "case_id": str(attestation.surgical_case_id) if attestation.surgical_case_id else None,
            "attestation_id": str(attestation.id),
            "type": attestation.type,
            "voided": attestation.is_voided,
        },
    )


class AttestationService:
    @staticmethod
    def latest(*, tenant_id: UUID, facility_id: UUID, case_id: UUID, type: str = AttestationType.CASE_READINESS):
        return (
            Attestation.objects.filter(
                tenant_id=tenant_id,
                facility_id=facility_id,
                surgical_case_id=case_id,
                type=type,
            )
            .order_by("-created_at", "-id")
            .first()
        )

    @staticmethod
    def state(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> str:
        """
        NONE, ATTESTED or VOIDED, from the latest readiness attestation.
        """
        latest = AttestationService.latest(tenant_id=tenant_id, facility_id=facility_id, case_id=case_id)
        if latest is None:
            return AttestationState.NONE
        return AttestationState.VOIDED if latest.is_voided else AttestationState.ATTESTED

    @staticmethod
    @transaction.atomic
    def attest(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int,
        case_id: UUID,
        type: str,
        notes: str = "",
        capabilities: frozenset[str] = frozenset(),
    ) -> Attestation:
        from asc_core.readiness.services import ReadinessService

        if type not in AttestationType.values:
            raise DomainValidationError("Unknown attestation type.", details={"type": type})

        case = (
            SurgicalCase.objects.select_for_update()
            .filter(id=case_id, tenant_id=tenant_id, facility_id=facility_id)
            .first()
        )
        if case is None:
            raise NotFound("Case not found.")
        if case.is_cancelled:
            raise InvalidState("Cancelled cases cannot be attested.")
        if not (case.is_active or case.status == CaseStatus.SCHEDULED):
            raise InvalidState("Only scheduled or active cases can be attested.", details={"status": case.status})

        if type == AttestationType.CASE_READINESS:
            if not has_capability(capabilities, Capability.READINESS_ATTEST):
                raise Forbidden("Only authorized staff can attest readiness.")
        elif case.surgeon_id != actor_user_id:
            raise Forbidden("Only the assigned surgeon can acknowledge.")

        signal = ReadinessService.compute(tenant_id=tenant_id, facility_id=facility_id, case_id=case.id)
        if type == AttestationType.SURGEON_ACKNOWLEDGMENT and signal.state != "RED":
            raise DomainValidationError("Surgeon acknowledgment is only needed while the case has missing items.")

        attestation = Attestation.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            surgical_case=case,
            type=type,
            attested_by_id=actor_user_id,
            readiness_state_at_time=signal.state,
            notes=notes or "",
        )

        logger.info("%s attestation recorded for case %s by user %s", type, case.case_number, actor_user_id)
        AuditService.log(
            event_code="attestation.created",
            entity_type="Attestation",
            entity_id=attestation.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"case_id": str(case.id), "type": type, "readiness_state": signal.state},
        )
        _publish_changed(attestation)
        return attestation

    @staticmethod
    @transaction.atomic
    def void(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int,
        attestation_id: UUID,
        reason: str = "",
        capabilities: frozenset[str] = frozenset(),
    ) -> Attestation:
        reason = (reason or "").strip()
        if len(reason) > MAX_VOID_REASON_LENGTH:
            raise DomainValidationError(f"Reason must be at most {MAX_VOID_REASON_LENGTH} characters.")

        found = Attestation.objects.filter(id=attestation_id, tenant_id=tenant_id, facility_id=facility_id).first()
        if found is None:
            raise NotFound("Attestation not found.")
        if found.surgical_case_id:
            # Case row first: readiness reads hold it while they run
            SurgicalCase.objects.select_for_update().filter(id=found.surgical_case_id).first()
        attestation = Attestation.objects.select_for_update().get(id=found.id)
        if attestation.is_voided:
            raise InvalidState("Attestation is already voided.")

        can_attest = has_capability(capabilities, Capability.READINESS_ATTEST)
        if attestation.type == AttestationType.SURGEON_ACKNOWLEDGMENT:
            if attestation.attested_by_id != actor_user_id and not can_attest:
                raise Forbidden("Only the attesting surgeon or authorized staff can void this acknowledgment.")
        elif not can_attest:
            raise Forbidden("Only authorized staff can void readiness attestations.")

        attestation.voided_at = timezone.now()
        attestation.voided_by_id = actor_user_id
        attestation.void_reason = reason
        attestation.save(update_fields=["voided_at", "voided_by", "void_reason", "updated_at"])

        logger.info("Attestation %s voided by user %s", attestation.id, actor_user_id)
        AuditService.log(
            event_code="attestation.voided",
            entity_type="Attestation",
            entity_id=attestation.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"case_id": str(attestation.surgical_case_id), "reason": reason},
        )
        _publish_changed(attestation)
        return attestation

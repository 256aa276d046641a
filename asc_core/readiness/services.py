# asc_core/readiness/services.py
from __future__ import annotations

import logging
from datetime import date, datetime, time
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from asc_core.attestations.services import AttestationService
from asc_core.cases.models import CaseRequirement, CaseStatus, SurgicalCase
from asc_core.checklists.models import ChecklistKind, ChecklistStatus
from asc_core.checklists.services import ChecklistService
from asc_core.common.exceptions import NotFound
from asc_core.inventory.selectors import InventorySelectors
from asc_core.readiness.engine import (
    ItemSnapshot,
    ReadinessInput,
    ReadinessSignal,
    RequirementInput,
    evaluate,
)
from asc_core.readiness.models import ReadinessCache

logger = logging.getLogger(__name__)


def _cache_enabled() -> bool:
    return bool(getattr(settings, "ASC_READINESS_CACHE_ENABLED", True))


def readiness_cutoff(case: SurgicalCase) -> datetime:
    """
    Start of the day the case is planned for (scheduled, else requested, else created).
    """
    day = case.scheduled_date or case.requested_date or timezone.localdate(case.created_at)
    return timezone.make_aware(datetime.combine(day, time.min), timezone.get_current_timezone())


def _snapshot(item) -> ItemSnapshot:
    return ItemSnapshot(
        id=item.id,
        catalog_item_id=item.catalog_item_id,
        availability_status=item.availability_status,
        reserved_for_case_id=item.reserved_for_case_id,
        location_id=item.location_id,
        sterility_status=item.sterility_status,
        sterility_expires_at=item.sterility_expires_at,
        last_verified_at=item.last_verified_at,
    )


class ReadinessService:
    """
    Gathers case, requirement, inventory, checklist and attestation state and runs the
    readiness engine over it.
    """

    @staticmethod
    def build_input(*, case: SurgicalCase, lock_items: bool = False) -> ReadinessInput:
        scope = {"tenant_id": case.tenant_id, "facility_id": case.facility_id}
        reqs = list(
            CaseRequirement.objects.filter(surgical_case=case, **scope).select_related("catalog_item").order_by("id")
        )
        requirements = [
            RequirementInput(
                catalog_item_id=r.catalog_item_id,
                quantity=r.quantity,
                catalog_name=r.catalog_item.name if r.catalog_item.facility_id == case.facility_id else None,
                requires_sterility=r.catalog_item.requires_sterility,
            )
            for r in reqs
        ]
        grouped = InventorySelectors.items_by_catalog(
            catalog_item_ids={r.catalog_item_id for r in reqs}, for_update=lock_items, **scope
        )

        return ReadinessInput(
            case_id=case.id,
            cutoff=readiness_cutoff(case),
            requirements=requirements,
            inventory={cid: tuple(_snapshot(i) for i in items) for cid, items in grouped.items()},
            attestation_state=AttestationService.state(case_id=case.id, **scope),
            checklist_statuses=ChecklistService.statuses(case_id=case.id, **scope),
        )

    @staticmethod
    def compute(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> ReadinessSignal:
        """
        Live readiness for one case from one consistent read.

        Requirement, checklist and attestation writers lock the case row; ledger
        writers lock the item row. Locks are taken case first, then items, the
        same order cancel and delete use.
        """
        with transaction.atomic():
            case = (
                SurgicalCase.objects.select_for_update()
                .filter(id=case_id, tenant_id=tenant_id, facility_id=facility_id)
                .first()
            )
            if case is None:
                raise NotFound("Case not found.")
            signal = evaluate(ReadinessService.build_input(case=case, lock_items=True))

            if _cache_enabled():
                ReadinessCache.objects.update_or_create(
                    surgical_case=case,
                    defaults={
                        "tenant_id": tenant_id,
                        "facility_id": facility_id,
                        "state": signal.state,
                        "payload": signal.as_dict(),
                        "computed_at": timezone.now(),
                    },
                )

        logger.debug("Readiness for case %s: %s (%s blockers)", case_id, signal.state, len(signal.blockers))
        return signal

    @staticmethod
    def cached(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> ReadinessCache | None:
        return ReadinessCache.objects.filter(
            tenant_id=tenant_id, facility_id=facility_id, surgical_case_id=case_id
        ).first()

    @staticmethod
    def can_start(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> bool:
        return (
            ChecklistService.status(
                tenant_id=tenant_id, facility_id=facility_id, case_id=case_id, kind=ChecklistKind.TIMEOUT
            )
            == ChecklistStatus.COMPLETED
        )

    @staticmethod
    def can_complete(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> bool:
        return (
            ChecklistService.status(
                tenant_id=tenant_id, facility_id=facility_id, case_id=case_id, kind=ChecklistKind.DEBRIEF
            )
            == ChecklistStatus.COMPLETED
        )

    @staticmethod
    def compute_for_date(*, tenant_id: UUID, facility_id: UUID, day: date) -> list[tuple[SurgicalCase, ReadinessSignal]]:
        """
        Readiness for every open case scheduled on `day`.
        """
        cases = (
            SurgicalCase.objects.filter(
                tenant_id=tenant_id,
                facility_id=facility_id,
                scheduled_date=day,
                is_cancelled=False,
            )
            .exclude(status__in=[CaseStatus.REJECTED, CaseStatus.CANCELLED])
            .order_by("scheduled_time", "case_number")
        )
        return [
            (case, ReadinessService.compute(tenant_id=tenant_id, facility_id=facility_id, case_id=case.id))
            for case in cases
        ]

    @staticmethod
    def invalidate(*, tenant_id: UUID, facility_id: UUID, case_id: UUID | None = None) -> int:
        qs = ReadinessCache.objects.filter(tenant_id=tenant_id, facility_id=facility_id)
        if case_id is not None:
            qs = qs.filter(surgical_case_id=case_id)
        deleted, _ = qs.delete()
        return deleted

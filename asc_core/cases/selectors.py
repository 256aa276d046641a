# asc_core/cases/selectors.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.db.models import QuerySet

from asc_core.cases.models import CaseRequirement, CaseStatusEvent, SurgicalCase
from asc_core.common.exceptions import NotFound


class CaseSelectors:
    """
    Read-only queries for cases.
    No .save(), no state mutation here.
    """

    @staticmethod
    def list_cases(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        status: str | None = None,
        surgeon_id: int | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        active: bool | None = None,
    ) -> QuerySet[SurgicalCase]:
        qs = SurgicalCase.objects.filter(tenant_id=tenant_id, facility_id=facility_id).select_related("preference_card_version")

        if status:
            qs = qs.filter(status=status)
        if surgeon_id:
            qs = qs.filter(surgeon_id=surgeon_id)
        if date_from:
            qs = qs.filter(scheduled_date__gte=date_from)
        if date_to:
            qs = qs.filter(scheduled_date__lte=date_to)
        if active is not None:
            qs = qs.filter(is_active=active)

        return qs.order_by("scheduled_date", "scheduled_time", "case_number")

    @staticmethod
    def get_case(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> SurgicalCase:
        case = (
            SurgicalCase.objects.select_related("preference_card_version")
            .filter(id=case_id, tenant_id=tenant_id, facility_id=facility_id)
            .first()
        )
        if case is None:
            raise NotFound("Case not found.")
        return case

    @staticmethod
    def requirements(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> QuerySet[CaseRequirement]:
        return (
            CaseRequirement.objects.filter(tenant_id=tenant_id, facility_id=facility_id, surgical_case_id=case_id)
            .select_related("catalog_item")
            .order_by("catalog_item__name", "id")
        )

    @staticmethod
    def status_history(*, tenant_id: UUID, facility_id: UUID, case_id: UUID) -> QuerySet[CaseStatusEvent]:
        return CaseStatusEvent.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            surgical_case_id=case_id,
        ).order_by("created_at", "id")

# asc_core/iam/services/membership.py
from __future__ import annotations

from uuid import UUID

from asc_core.iam.models import FacilityMembership


def list_user_facilities(user_id: int) -> list[dict]:
    """
    Facility memberships for the /me response, one entry per facility with all role codes.

    Membership graph:
      auth_user -> UserProfile -> FacilityMembership -> Facility (+ Tenant)
    """
    qs = (
        FacilityMembership.objects.select_related("facility", "tenant", "role")
        .filter(user_profile__user_id=user_id, is_active=True)
        .order_by("facility__name", "role__code")
    )

    by_facility: dict[str, dict] = {}
    for m in qs:
        key = str(m.facility_id)
        item = by_facility.get(key)
        if item is None:
            item = {
                "tenant_id": str(m.tenant_id),
                "tenant_code": m.tenant.code,
                "facility_id": key,
                "facility_code": m.facility.code,
                "facility_name": m.facility.name,
                "role_codes": [],
            }
            by_facility[key] = item
        item["role_codes"].append(m.role.code)
    return list(by_facility.values())


def is_user_member_of_facility(*, user_id: int, tenant_id: UUID, facility_id: UUID) -> bool:
    """
    Validate user -> (tenant, facility) membership.
    This is the single source of truth used by scope enforcement.
    """
    return FacilityMembership.objects.filter(
        is_active=True,
        tenant_id=tenant_id,
        facility_id=facility_id,
        user_profile__user_id=user_id,
        user_profile__is_active=True,
    ).exists()


def role_codes_for(*, user_id: int, tenant_id: UUID, facility_id: UUID) -> set[str]:
    return set(
        FacilityMembership.objects.filter(
            is_active=True,
            tenant_id=tenant_id,
            facility_id=facility_id,
            user_profile__user_id=user_id,
            user_profile__is_active=True,
            role__is_active=True,
        ).values_list("role__code", flat=True)
    )

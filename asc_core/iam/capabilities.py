# asc_core/iam/capabilities.py
"""
Role -> capability resolution.

This is the only module that knows role names. Callers resolve a capability set once
at the request boundary and hand the frozen set to services, which test membership of
individual capabilities.
"""
from __future__ import annotations

from typing import Iterable


class Role:
    ADMIN = "ADMIN"
    SCHEDULER = "SCHEDULER"
    SURGEON = "SURGEON"
    ANESTHESIA = "ANESTHESIA"
    CIRCULATOR = "CIRCULATOR"
    SCRUB = "SCRUB"
    INVENTORY_TECH = "INVENTORY_TECH"

    ALL = (ADMIN, SCHEDULER, SURGEON, ANESTHESIA, CIRCULATOR, SCRUB, INVENTORY_TECH)


class Capability:
    CASE_VIEW = "CASE_VIEW"
    CASE_CREATE = "CASE_CREATE"
    CASE_UPDATE = "CASE_UPDATE"
    CASE_SCHEDULE = "CASE_SCHEDULE"
    CASE_APPROVE = "CASE_APPROVE"
    CASE_REJECT = "CASE_REJECT"
    CASE_ACTIVATE = "CASE_ACTIVATE"
    CASE_CANCEL = "CASE_CANCEL"
    CASE_DELETE = "CASE_DELETE"
    CASE_PREFERENCE_CARD_LINK = "CASE_PREFERENCE_CARD_LINK"
    # Edit requirements on a case assigned to another surgeon
    CASE_REQUIREMENTS_OVERRIDE = "CASE_REQUIREMENTS_OVERRIDE"
    CATALOG_MANAGE = "CATALOG_MANAGE"
    INVENTORY_READ = "INVENTORY_READ"
    INVENTORY_MANAGE = "INVENTORY_MANAGE"
    VERIFY_SCAN = "VERIFY_SCAN"
    CHECKLIST_ATTEST = "CHECKLIST_ATTEST"
    READINESS_VIEW = "READINESS_VIEW"
    # Staff sign-off that a case is ready
    READINESS_ATTEST = "READINESS_ATTEST"


_CLINICAL_TEAM = frozenset(
    {
        Capability.CASE_VIEW,
        Capability.INVENTORY_READ,
        Capability.VERIFY_SCAN,
        Capability.CHECKLIST_ATTEST,
        Capability.READINESS_VIEW,
    }
)

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    Role.ADMIN: frozenset(
        v for k, v in vars(Capability).items() if not k.startswith("_") and isinstance(v, str)
    ),
    Role.SCHEDULER: frozenset(
        {
            Capability.CASE_VIEW,
            Capability.CASE_CREATE,
            Capability.CASE_UPDATE,
            Capability.CASE_SCHEDULE,
            Capability.CASE_APPROVE,
            Capability.CASE_REJECT,
            Capability.CASE_ACTIVATE,
            Capability.CASE_CANCEL,
            Capability.CASE_PREFERENCE_CARD_LINK,
            Capability.INVENTORY_READ,
            Capability.READINESS_VIEW,
        }
    ),
    Role.SURGEON: frozenset(
        {
            Capability.CASE_VIEW,
            Capability.CASE_CREATE,
            Capability.CASE_UPDATE,
            Capability.CASE_CANCEL,
            Capability.CASE_PREFERENCE_CARD_LINK,
            Capability.INVENTORY_READ,
            Capability.CHECKLIST_ATTEST,
            Capability.READINESS_VIEW,
        }
    ),
    Role.ANESTHESIA: _CLINICAL_TEAM,
    Role.CIRCULATOR: _CLINICAL_TEAM | {Capability.READINESS_ATTEST},
    Role.SCRUB: _CLINICAL_TEAM,
    Role.INVENTORY_TECH: frozenset(
        {
            Capability.CASE_VIEW,
            Capability.INVENTORY_READ,
            Capability.INVENTORY_MANAGE,
            Capability.VERIFY_SCAN,
            Capability.READINESS_VIEW,
            Capability.READINESS_ATTEST,
        }
    ),
}


def resolve_capabilities(roles: Iterable[str]) -> frozenset[str]:
    """
    Union of the capabilities granted by each role. Unknown role codes grant nothing.
    """
    caps: set[str] = set()
    for role in roles or ():
        caps |= ROLE_CAPABILITIES.get(str(role).strip().upper(), frozenset())
    return frozenset(caps)


def has_capability(capabilities: Iterable[str] | None, capability: str) -> bool:
    return capability in (capabilities or ())

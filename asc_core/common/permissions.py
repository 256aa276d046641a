# asc_core/common/permissions.py
from __future__ import annotations

from rest_framework.permissions import BasePermission

from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Role, resolve_capabilities
from asc_core.iam.services.membership import role_codes_for


def capabilities_for_request(request) -> frozenset[str]:
    """
    Resolve the caller's capabilities once per request (cached on the request).

    Roles come from the caller's memberships at the request's facility. Superusers are
    treated as ADMIN. Missing scope surfaces as the usual 400 from require_scope.
    """
    cached = getattr(request, "_asc_capabilities", None)
    if cached is not None:
        return cached

    user = getattr(request, "user", None)
    caps: frozenset[str] = frozenset()

    if user is not None and getattr(user, "is_authenticated", False):
        if getattr(user, "is_superuser", False):
            caps = resolve_capabilities([Role.ADMIN])
        else:
            scope = require_scope(request)
            caps = resolve_capabilities(
                role_codes_for(user_id=user.id, tenant_id=scope.tenant_id, facility_id=scope.facility_id)
            )

    request._asc_capabilities = caps
    return caps


class HasCapability(BasePermission):
    """
    Checks `required_capabilities` on the view: either a single capability string
    or a dict mapping action name -> capability (None means authenticated is enough).
    """
    message = "You do not have the capability required for this action."

    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        if not user or not getattr(user, "is_authenticated", False):
            return False

        required = getattr(view, "required_capabilities", None)
        if isinstance(required, dict):
            required = required.get(getattr(view, "action", None))
        if not required:
            return True

        return required in capabilities_for_request(request)

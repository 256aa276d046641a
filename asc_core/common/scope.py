# asc_core/common/scope.py
from __future__ import annotations

from rest_framework.exceptions import ValidationError

from asc_core.iam.scope import (
    MISSING_SCOPE_MSG,
    Scope,
    assert_user_membership,
    resolve_scope_from_headers,
)


def require_scope(request) -> Scope:
    """
    Scope for a view. Prefers what middleware/auth already attached; otherwise reads
    the headers and checks membership (force-authenticated test clients skip both).

    Raises 400 when scope is missing, 403 when the user is not a member.
    """
    scope = getattr(request, "scope", None)
    if isinstance(scope, Scope):
        return scope

    scope = resolve_scope_from_headers(request)
    if scope is None:
        raise ValidationError(MISSING_SCOPE_MSG)

    assert_user_membership(getattr(request, "user", None), scope)

    request.scope = scope
    request.tenant_id = scope.tenant_id
    request.facility_id = scope.facility_id
    return scope

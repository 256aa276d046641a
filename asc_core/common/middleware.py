# asc_core/common/middleware.py
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from asc_core.common.api.exceptions import build_error_envelope
from asc_core.iam.scope import INVALID_SCOPE_MSG, MISSING_SCOPE_MSG, Scope
from asc_core.iam.services import membership

logger = logging.getLogger(__name__)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class TenantFacilityScopeMiddleware(MiddlewareMixin):
    """
    Enforces tenant/facility scope for API requests made by session-authenticated users.

    Behavior:
      - Enforced for /api/v1/* and the /api/* alias.
      - BOTH headers are required (400 if missing), except for /me/ where they are optional.
      - Auth endpoints (login/refresh/logout) and docs/schema/admin never require scope.
      - Invalid UUIDs -> 400, user not a member -> 403.
      - On success attaches request.scope, request.tenant_id, request.facility_id.

    JWT-authenticated requests are resolved later by the DRF authentication class.
    """

    TENANT_META_KEYS = ("HTTP_X_TENANT_ID",)
    FACILITY_META_KEYS = ("HTTP_X_FACILITY_ID",)

    ENFORCED_PREFIXES = ("/api/v1/", "/api/")

    PUBLIC_PATH_PREFIXES = (
        "/admin/",
        "/api/docs/",
        "/api/schema/",
    )

    AUTH_PATH_SUFFIXES = (
        "/auth/login/",
        "/auth/refresh/",
        "/auth/logout/",
    )

    ALLOW_NO_SCOPE_EXACT_PATHS = (
        "/api/v1/",
        "/api/",
    )

    ALLOW_NO_SCOPE_SUFFIXES = ("/me/",)

    def _is_api_path(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.ENFORCED_PREFIXES)

    def _starts_with_any(self, path: str, prefixes: tuple[str, ...]) -> bool:
        return any(path.startswith(p) for p in prefixes)

    def _endswith_any(self, path: str, suffixes: tuple[str, ...]) -> bool:
        return any(path.endswith(s) for s in suffixes)

    def _get_meta_first(self, request, keys: tuple[str, ...]) -> Optional[str]:
        for k in keys:
            v = request.META.get(k)
            if v:
                return v
        return None

    def _json_error(self, request, *, status_code: int, code: str, message: str, details=None) -> JsonResponse:
        return JsonResponse(
            build_error_envelope(
                request=request,
                code=code,
                message=message,
                details=details,
            ),
            status=status_code,
        )

    def process_request(self, request):
        path = getattr(request, "path", "") or ""

        if self._starts_with_any(path, self.PUBLIC_PATH_PREFIXES):
            return None

        if not self._is_api_path(path):
            return None

        if path in self.ALLOW_NO_SCOPE_EXACT_PATHS:
            return None

        if self._endswith_any(path, self.AUTH_PATH_SUFFIXES):
            return None

        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return None

        tenant_raw = self._get_meta_first(request, self.TENANT_META_KEYS)
        facility_raw = self._get_meta_first(request, self.FACILITY_META_KEYS)

        if not tenant_raw and not facility_raw and self._endswith_any(path, self.ALLOW_NO_SCOPE_SUFFIXES):
            return None

        if not tenant_raw or not facility_raw:
            return self._json_error(
                request,
                status_code=400,
                code="validation_error",
                message=MISSING_SCOPE_MSG,
            )

        tenant_id = _parse_uuid(tenant_raw)
        facility_id = _parse_uuid(facility_raw)
        if not tenant_id or not facility_id:
            return self._json_error(
                request,
                status_code=400,
                code="validation_error",
                message=INVALID_SCOPE_MSG,
            )

        if not membership.is_user_member_of_facility(user_id=user.id, tenant_id=tenant_id, facility_id=facility_id):
            logger.warning(
                "Scope refused: user %s is not a member of facility %s (tenant %s)",
                user.id,
                facility_id,
                tenant_id,
            )
            return self._json_error(
                request,
                status_code=403,
                code="permission_denied",
                message="You do not have access to the selected facility.",
            )

        request.scope = Scope(tenant_id=tenant_id, facility_id=facility_id)
        request.tenant_id = tenant_id
        request.facility_id = facility_id
        return None

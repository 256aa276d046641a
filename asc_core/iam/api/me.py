# asc_core/iam/api/me.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from asc_core.common.permissions import capabilities_for_request
from asc_core.iam.api.schema_serializers import MeResponseSerializer
from asc_core.iam.scope import assert_user_membership, resolve_scope_from_headers
from asc_core.iam.services.membership import list_user_facilities


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: MeResponseSerializer}, tags=["IAM"])
    def get(self, request):
        """
        User info + memberships. Scope headers are optional here; when provided they must
        be valid and the user must be a member, and the response then carries the
        capabilities resolved for that facility.
        """
        scope = getattr(request, "scope", None) or resolve_scope_from_headers(request)
        capabilities: list[str] = []
        active_scope = None

        if scope is not None:
            assert_user_membership(request.user, scope)
            request.scope = scope
            request.tenant_id = scope.tenant_id
            request.facility_id = scope.facility_id
            capabilities = sorted(capabilities_for_request(request))
            active_scope = {"tenant_id": str(scope.tenant_id), "facility_id": str(scope.facility_id)}

        return Response(
            {
                "user": {
                    "id": request.user.id,
                    "username": getattr(request.user, "username", None),
                    "email": getattr(request.user, "email", None),
                    "is_superuser": bool(getattr(request.user, "is_superuser", False)),
                },
                "memberships": list_user_facilities(request.user.id),
                "active_scope": active_scope,
                "capabilities": capabilities,
            },
            status=status.HTTP_200_OK,
        )

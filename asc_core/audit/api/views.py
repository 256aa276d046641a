# asc_core/audit/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from asc_core.audit.api.serializers import AuditEventSerializer
from asc_core.audit.models import AuditEvent
from asc_core.audit.selectors import list_audit_events
from asc_core.common.permissions import HasCapability
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability


class AuditEventViewSet(viewsets.GenericViewSet):
    """
    List audit/timeline events (scoped).
    """
    permission_classes = [HasCapability]
    required_capabilities = Capability.CASE_VIEW

    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="entity_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="entity_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="event_code", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 500).",
            ),
        ],
    )
    def list(self, request):
        scope = require_scope(request)

        entity_id = None
        entity_id_raw = request.query_params.get("entity_id") or None
        if entity_id_raw:
            try:
                entity_id = UUID(str(entity_id_raw))
            except ValueError:
                raise ValidationError({"entity_id": "Invalid UUID."})

        qs = list_audit_events(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            entity_type=request.query_params.get("entity_type") or None,
            entity_id=entity_id,
            event_code=request.query_params.get("event_code") or None,
        )

        # timeline endpoints can get huge
        try:
            limit_n = int(request.query_params.get("limit") or 200)
        except ValueError:
            limit_n = 200
        limit_n = max(1, min(limit_n, 500))

        return Response(AuditEventSerializer(qs[:limit_n], many=True).data, status=status.HTTP_200_OK)

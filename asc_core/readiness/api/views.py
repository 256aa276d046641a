# asc_core/readiness/api/views.py
from __future__ import annotations

from datetime import date

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from asc_core.common.permissions import HasCapability
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability
from asc_core.readiness.serializers import DayReadinessRowSerializer
from asc_core.readiness.services import ReadinessService


@extend_schema(
    tags=["Readiness"],
    parameters=[OpenApiParameter("date", OpenApiTypes.DATE, OpenApiParameter.QUERY, required=True)],
    responses={200: DayReadinessRowSerializer(many=True)},
)
class DayReadinessView(APIView):
    """
    GET /readiness/?date=YYYY-MM-DD
    """
    permission_classes = [HasCapability]
    required_capabilities = Capability.READINESS_VIEW

    def get(self, request):
        scope = require_scope(request)
        raw = request.query_params.get("date")
        try:
            day = date.fromisoformat(raw or "")
        except ValueError:
            raise ValidationError({"date": "Use YYYY-MM-DD."})

        rows = []
        for case, signal in ReadinessService.compute_for_date(
            tenant_id=scope.tenant_id, facility_id=scope.facility_id, day=day
        ):
            rows.append(
                {
                    **signal.as_dict(),
                    "case_number": case.case_number,
                    "procedure_name": case.procedure_name,
                    "surgeon_id": case.surgeon_id,
                    "scheduled_time": case.scheduled_time,
                    "is_active": case.is_active,
                }
            )

        summary = {
            "total": len(rows),
            "green": sum(1 for r in rows if r["state"] == "GREEN"),
            "orange": sum(1 for r in rows if r["state"] == "ORANGE"),
            "red": sum(1 for r in rows if r["state"] == "RED"),
        }
        return Response(
            {"date": day.isoformat(), "summary": summary, "cases": DayReadinessRowSerializer(rows, many=True).data},
            status=status.HTTP_200_OK,
        )

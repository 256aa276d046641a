# asc_core/checklists/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from asc_core.cases.selectors import CaseSelectors
from asc_core.checklists.models import ChecklistInstance
from asc_core.checklists.serializers import (
    ChecklistCompleteSerializer,
    ChecklistInstanceSerializer,
    ChecklistStartSerializer,
)
from asc_core.checklists.services import ChecklistService
from asc_core.common.api.params import path_uuid
from asc_core.common.permissions import HasCapability
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability


@extend_schema(tags=["Checklists"])
class CaseChecklistViewSet(viewsets.ViewSet):
    """
    /cases/{case_id}/checklists/
    """
    permission_classes = [HasCapability]
    required_capabilities = {
        "list": Capability.CASE_VIEW,
        "start": Capability.CHECKLIST_ATTEST,
        "complete": Capability.CHECKLIST_ATTEST,
    }
    serializer_class = ChecklistInstanceSerializer
    queryset = ChecklistInstance.objects.none()

    def list(self, request, case_id=None):
        scope = require_scope(request)
        case = CaseSelectors.get_case(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            case_id=path_uuid(case_id, label="Case"),
        )
        rows = ChecklistInstance.objects.filter(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            surgical_case=case,
        ).order_by("kind")
        return Response(
            {
                "statuses": ChecklistService.statuses(
                    tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=case.id
                ),
                "instances": ChecklistInstanceSerializer(rows, many=True).data,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(request=ChecklistStartSerializer, responses={200: ChecklistInstanceSerializer})
    @action(detail=False, methods=["post"], url_path="start")
    def start(self, request, case_id=None):
        scope = require_scope(request)
        ser = ChecklistStartSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        instance = ChecklistService.start(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            case_id=path_uuid(case_id, label="Case"),
            kind=ser.validated_data["kind"],
        )
        return Response(ChecklistInstanceSerializer(instance).data, status=status.HTTP_200_OK)

    @extend_schema(request=ChecklistCompleteSerializer, responses={200: ChecklistInstanceSerializer})
    @action(detail=False, methods=["post"], url_path="complete")
    def complete(self, request, case_id=None):
        scope = require_scope(request)
        ser = ChecklistCompleteSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        instance = ChecklistService.complete(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            case_id=path_uuid(case_id, label="Case"),
            kind=ser.validated_data["kind"],
            responses=ser.validated_data["responses"],
        )
        return Response(ChecklistInstanceSerializer(instance).data, status=status.HTTP_200_OK)

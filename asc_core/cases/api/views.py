# asc_core/cases/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from asc_core.cases.commands import (
    ActivateCaseCommand,
    ApproveCaseCommand,
    CancelCaseCommand,
    CreateCaseCommand,
    RejectCaseCommand,
    RequirementItem,
    UpdateCaseCommand,
)
from asc_core.cases.models import SurgicalCase
from asc_core.cases.selectors import CaseSelectors
from asc_core.cases.serializers import (
    CaseActivateSerializer,
    CaseApproveSerializer,
    CaseCancelSerializer,
    CaseCreateSerializer,
    CaseListParamsSerializer,
    CaseRejectSerializer,
    CaseRequirementSerializer,
    CaseStatusEventSerializer,
    CaseUpdateSerializer,
    SetRequirementsSerializer,
    SurgicalCaseSerializer,
)
from asc_core.cases.services import CaseService
from asc_core.common.api.pagination import paginate
from asc_core.common.api.params import path_uuid
from asc_core.common.permissions import HasCapability, capabilities_for_request
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability
from asc_core.readiness.serializers import ReadinessSignalSerializer
from asc_core.readiness.services import ReadinessService


def _actor(request) -> int | None:
    return getattr(request.user, "id", None)


@extend_schema(tags=["Cases"])
class CaseViewSet(viewsets.ViewSet):
    permission_classes = [HasCapability]
    required_capabilities = {
        "list": Capability.CASE_VIEW,
        "retrieve": Capability.CASE_VIEW,
        "create": Capability.CASE_CREATE,
        "partial_update": Capability.CASE_UPDATE,
        "destroy": Capability.CASE_DELETE,
        "approve": Capability.CASE_APPROVE,
        "reject": Capability.CASE_REJECT,
        "activate": Capability.CASE_ACTIVATE,
        "deactivate": Capability.CASE_ACTIVATE,
        "cancel": Capability.CASE_CANCEL,
        "requirements": Capability.CASE_VIEW,
        "set_requirements": Capability.CASE_UPDATE,
        "status_events": Capability.CASE_VIEW,
        "readiness": Capability.READINESS_VIEW,
    }
    serializer_class = SurgicalCaseSerializer
    queryset = SurgicalCase.objects.none()

    def _case_id(self, pk):
        return path_uuid(pk, label="Case")

    def _respond(self, case: SurgicalCase, code=status.HTTP_200_OK) -> Response:
        return Response(SurgicalCaseSerializer(case).data, status=code)

    @extend_schema(parameters=[CaseListParamsSerializer])
    def list(self, request):
        scope = require_scope(request)
        params = CaseListParamsSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        p = params.validated_data

        qs = CaseSelectors.list_cases(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            status=p.get("status"),
            surgeon_id=p.get("surgeon"),
            date_from=p.get("date_from"),
            date_to=p.get("date_to"),
            active=p.get("active"),
        )
        return paginate(request, qs, SurgicalCaseSerializer)

    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        case = CaseSelectors.get_case(
            tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=self._case_id(pk)
        )
        return self._respond(case)

    @extend_schema(request=CaseCreateSerializer, responses={201: SurgicalCaseSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = CaseCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        case = CaseService.create(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            command=CreateCaseCommand(**ser.validated_data),
            capabilities=capabilities_for_request(request),
        )
        return self._respond(case, status.HTTP_201_CREATED)

    @extend_schema(request=CaseUpdateSerializer, responses={200: SurgicalCaseSerializer})
    def partial_update(self, request, pk=None):
        scope = require_scope(request)
        ser = CaseUpdateSerializer(data=request.data or {}, partial=True)
        ser.is_valid(raise_exception=True)

        case = CaseService.update(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
            command=UpdateCaseCommand.from_data(ser.validated_data),
            capabilities=capabilities_for_request(request),
        )
        return self._respond(case)

    def destroy(self, request, pk=None):
        scope = require_scope(request)
        CaseService.delete(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=CaseApproveSerializer, responses={200: SurgicalCaseSerializer})
    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        scope = require_scope(request)
        ser = CaseApproveSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        case = CaseService.approve(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
            command=ApproveCaseCommand(**ser.validated_data),
        )
        return self._respond(case)

    @extend_schema(request=CaseRejectSerializer, responses={200: SurgicalCaseSerializer})
    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        scope = require_scope(request)
        ser = CaseRejectSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        case = CaseService.reject(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
            command=RejectCaseCommand(**ser.validated_data),
        )
        return self._respond(case)

    @extend_schema(request=CaseActivateSerializer, responses={200: SurgicalCaseSerializer})
    @action(detail=True, methods=["post"], url_path="activate")
    def activate(self, request, pk=None):
        scope = require_scope(request)
        ser = CaseActivateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        case = CaseService.activate(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
            command=ActivateCaseCommand(**ser.validated_data),
        )
        return self._respond(case)

    @extend_schema(request=None, responses={200: SurgicalCaseSerializer})
    @action(detail=True, methods=["post"], url_path="deactivate")
    def deactivate(self, request, pk=None):
        scope = require_scope(request)
        case = CaseService.deactivate(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
        )
        return self._respond(case)

    @extend_schema(request=CaseCancelSerializer, responses={200: SurgicalCaseSerializer})
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        scope = require_scope(request)
        ser = CaseCancelSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        case = CaseService.cancel(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
            command=CancelCaseCommand(**ser.validated_data),
        )
        return self._respond(case)

    @extend_schema(responses={200: CaseRequirementSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="requirements")
    def requirements(self, request, pk=None):
        scope = require_scope(request)
        case = CaseSelectors.get_case(
            tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=self._case_id(pk)
        )
        rows = CaseSelectors.requirements(tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=case.id)
        return Response(CaseRequirementSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(request=SetRequirementsSerializer, responses={200: CaseRequirementSerializer(many=True)})
    @requirements.mapping.put
    def set_requirements(self, request, pk=None):
        scope = require_scope(request)
        ser = SetRequirementsSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        rows = CaseService.set_requirements(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=_actor(request),
            case_id=self._case_id(pk),
            items=[RequirementItem(**item) for item in ser.validated_data["items"]],
            is_override=ser.validated_data["is_override"],
            capabilities=capabilities_for_request(request),
        )
        return Response(CaseRequirementSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(responses={200: CaseStatusEventSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="status-events")
    def status_events(self, request, pk=None):
        scope = require_scope(request)
        case = CaseSelectors.get_case(
            tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=self._case_id(pk)
        )
        rows = CaseSelectors.status_history(tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=case.id)
        return Response(CaseStatusEventSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(responses={200: ReadinessSignalSerializer})
    @action(detail=True, methods=["get"], url_path="readiness")
    def readiness(self, request, pk=None):
        scope = require_scope(request)
        signal = ReadinessService.compute(
            tenant_id=scope.tenant_id, facility_id=scope.facility_id, case_id=self._case_id(pk)
        )
        return Response(signal.as_dict(), status=status.HTTP_200_OK)

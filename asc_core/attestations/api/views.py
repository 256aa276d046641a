# asc_core/attestations/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from asc_core.attestations.models import Attestation
from asc_core.attestations.serializers import (
    AttestationCreateSerializer,
    AttestationSerializer,
    AttestationVoidSerializer,
)
from asc_core.attestations.services import AttestationService
from asc_core.common.api.params import path_uuid
from asc_core.common.permissions import HasCapability, capabilities_for_request
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability


@extend_schema(tags=["Attestations"])
class AttestationViewSet(viewsets.ViewSet):
    permission_classes = [HasCapability]
    # create/void decide per attestation type in the service
    required_capabilities = {
        "list": Capability.CASE_VIEW,
        "create": Capability.CASE_VIEW,
        "void": Capability.CASE_VIEW,
    }
    serializer_class = AttestationSerializer
    queryset = Attestation.objects.none()

    @extend_schema(
        parameters=[OpenApiParameter("case", OpenApiTypes.UUID, OpenApiParameter.QUERY, required=True)],
        responses={200: AttestationSerializer(many=True)},
    )
    def list(self, request):
        scope = require_scope(request)
        raw = request.query_params.get("case")
        if not raw:
            raise ValidationError({"case": "This query parameter is required."})

        rows = Attestation.objects.filter(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            surgical_case_id=path_uuid(raw, label="Case"),
        ).order_by("-created_at", "-id")
        return Response(AttestationSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(request=AttestationCreateSerializer, responses={201: AttestationSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = AttestationCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        attestation = AttestationService.attest(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=request.user.id,
            case_id=ser.validated_data["case_id"],
            type=ser.validated_data["type"],
            notes=ser.validated_data["notes"],
            capabilities=capabilities_for_request(request),
        )
        return Response(AttestationSerializer(attestation).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=AttestationVoidSerializer, responses={200: AttestationSerializer})
    @action(detail=True, methods=["post"], url_path="void")
    def void(self, request, pk=None):
        scope = require_scope(request)
        ser = AttestationVoidSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        attestation = AttestationService.void(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=request.user.id,
            attestation_id=path_uuid(pk, label="Attestation"),
            reason=ser.validated_data["reason"],
            capabilities=capabilities_for_request(request),
        )
        return Response(AttestationSerializer(attestation).data, status=status.HTTP_200_OK)

# asc_core/preference_cards/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from asc_core.common.api.pagination import paginate
from asc_core.common.api.params import path_uuid
from asc_core.common.permissions import HasCapability
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability
from asc_core.preference_cards.models import PreferenceCard
from asc_core.preference_cards.serializers import (
    PreferenceCardCreateSerializer,
    PreferenceCardSerializer,
    PreferenceCardVersionSerializer,
    PublishVersionSerializer,
)
from asc_core.preference_cards.services import PreferenceCardService


@extend_schema(tags=["Preference cards"])
class PreferenceCardViewSet(viewsets.ViewSet):
    permission_classes = [HasCapability]
    required_capabilities = {
        "list": Capability.CASE_VIEW,
        "retrieve": Capability.CASE_VIEW,
        "versions": Capability.CASE_VIEW,
        "create": Capability.CASE_PREFERENCE_CARD_LINK,
        "publish_version": Capability.CASE_PREFERENCE_CARD_LINK,
    }
    serializer_class = PreferenceCardSerializer
    queryset = PreferenceCard.objects.none()

    def list(self, request):
        scope = require_scope(request)
        qs = PreferenceCard.objects.filter(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
        ).select_related("current_version")

        surgeon_raw = request.query_params.get("surgeon_id")
        if surgeon_raw and surgeon_raw.isdigit():
            qs = qs.filter(surgeon_id=int(surgeon_raw))

        return paginate(request, qs.order_by("procedure_name", "id"), PreferenceCardSerializer)

    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        card = PreferenceCardService.get_card(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            card_id=path_uuid(pk, label="Preference card"),
        )
        return Response(PreferenceCardSerializer(card).data, status=status.HTTP_200_OK)

    @extend_schema(request=PreferenceCardCreateSerializer, responses={201: PreferenceCardSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = PreferenceCardCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        card = PreferenceCardService.create_card(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            **ser.validated_data,
        )
        return Response(PreferenceCardSerializer(card).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="versions")
    def versions(self, request, pk=None):
        scope = require_scope(request)
        card = PreferenceCardService.get_card(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            card_id=path_uuid(pk, label="Preference card"),
        )
        rows = card.versions.order_by("-version_number")
        return Response(PreferenceCardVersionSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(request=PublishVersionSerializer, responses={201: PreferenceCardVersionSerializer})
    @versions.mapping.post
    def publish_version(self, request, pk=None):
        scope = require_scope(request)
        ser = PublishVersionSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        version = PreferenceCardService.publish_version(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            card_id=path_uuid(pk, label="Preference card"),
            items=ser.validated_data["items"],
            change_summary=ser.validated_data["change_summary"],
        )
        return Response(PreferenceCardVersionSerializer(version).data, status=status.HTTP_201_CREATED)

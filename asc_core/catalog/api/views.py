# asc_core/catalog/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from asc_core.catalog.models import CatalogItem
from asc_core.catalog.selectors import CatalogSelectors
from asc_core.catalog.serializers import (
    CatalogItemCreateSerializer,
    CatalogItemSerializer,
    SetComponentInputSerializer,
    SetComponentSerializer,
)
from asc_core.catalog.services import CatalogService
from asc_core.common.api.pagination import paginate
from asc_core.common.api.params import path_uuid
from asc_core.common.exceptions import NotFound
from asc_core.common.permissions import HasCapability
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability


@extend_schema(tags=["Catalog"])
class CatalogItemViewSet(viewsets.ViewSet):
    permission_classes = [HasCapability]
    required_capabilities = {
        "list": Capability.INVENTORY_READ,
        "retrieve": Capability.INVENTORY_READ,
        "create": Capability.CATALOG_MANAGE,
        "components": Capability.INVENTORY_READ,
        "add_component": Capability.CATALOG_MANAGE,
        "remove_component": Capability.CATALOG_MANAGE,
    }
    serializer_class = CatalogItemSerializer
    queryset = CatalogItem.objects.none()

    def list(self, request):
        scope = require_scope(request)
        active_raw = request.query_params.get("active")
        qs = CatalogSelectors.list_items(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            category=request.query_params.get("category") or None,
            active=None if active_raw in (None, "") else active_raw.lower() in ("1", "true", "yes"),
            search=request.query_params.get("search") or None,
        )
        return paginate(request, qs, CatalogItemSerializer)

    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        item = CatalogItem.objects.filter(
            id=path_uuid(pk, label="Catalog item"),
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
        ).first()
        if item is None:
            raise NotFound("Catalog item not found.")
        return Response(CatalogItemSerializer(item).data, status=status.HTTP_200_OK)

    @extend_schema(request=CatalogItemCreateSerializer, responses={201: CatalogItemSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = CatalogItemCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        item = CatalogService.create_item(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            **ser.validated_data,
        )
        return Response(CatalogItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="components")
    def components(self, request, pk=None):
        scope = require_scope(request)
        rows = CatalogSelectors.components(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            set_item_id=path_uuid(pk, label="Catalog item"),
        )
        return Response(SetComponentSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(request=SetComponentInputSerializer, responses={201: SetComponentSerializer})
    @components.mapping.post
    def add_component(self, request, pk=None):
        scope = require_scope(request)
        ser = SetComponentInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        row = CatalogService.add_set_component(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            set_item_id=path_uuid(pk, label="Catalog item"),
            component_item_id=ser.validated_data["component_item_id"],
            quantity=ser.validated_data["quantity"],
        )
        return Response(SetComponentSerializer(row).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"components/(?P<component_id>[0-9a-f-]+)")
    def remove_component(self, request, pk=None, component_id=None):
        scope = require_scope(request)
        CatalogService.remove_set_component(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=getattr(request.user, "id", None),
            set_item_id=path_uuid(pk, label="Catalog item"),
            component_item_id=path_uuid(component_id, label="Set component"),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

# asc_core/inventory/api/views.py
from __future__ import annotations

import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from asc_core.common.api.pagination import paginate
from asc_core.common.api.params import path_uuid
from asc_core.common.exceptions import NotFound
from asc_core.common.permissions import HasCapability, capabilities_for_request
from asc_core.common.scope import require_scope
from asc_core.iam.capabilities import Capability
from asc_core.inventory.filters import InventoryItemFilter
from asc_core.inventory.models import InventoryEventType, InventoryItem
from asc_core.inventory.selectors import InventorySelectors
from asc_core.inventory.serializers import (
    BulkInventoryEventsSerializer,
    DeviceScanSerializer,
    InventoryEventInputSerializer,
    InventoryEventSerializer,
    InventoryItemCreateSerializer,
    InventoryItemSerializer,
    ReleaseInputSerializer,
    ReserveInputSerializer,
    ResolveMissingSerializer,
)
from asc_core.inventory.services import BulkInventoryEvent, InventoryEventContext, InventoryLedger

logger = logging.getLogger(__name__)

# Scanner-originated events; the rest need INVENTORY_MANAGE
_VERIFY_EVENT_TYPES = {InventoryEventType.VERIFIED}


def _require_event_capability(view, request, event_types) -> None:
    caps = capabilities_for_request(request)
    if Capability.INVENTORY_MANAGE in caps:
        return
    if Capability.VERIFY_SCAN in caps and all(t in _VERIFY_EVENT_TYPES for t in event_types):
        return
    view.permission_denied(request, message=HasCapability.message)


def _event_context(data: dict, user_id) -> InventoryEventContext:
    return InventoryEventContext(
        case_id=data.get("case_id"),
        location_id=data.get("location_id"),
        previous_location_id=data.get("previous_location_id"),
        sterility_status=data.get("sterility_status"),
        sterility_expires_at=data.get("sterility_expires_at"),
        target_availability=data.get("target_availability"),
        notes=data.get("notes") or "",
        performed_by_id=user_id,
        device_event_id=data.get("device_event_id") or "",
        reported_at=data.get("reported_at"),
    )


@extend_schema(tags=["Inventory"])
class InventoryItemViewSet(viewsets.ViewSet):
    permission_classes = [HasCapability]
    required_capabilities = {
        "list": Capability.INVENTORY_READ,
        "retrieve": Capability.INVENTORY_READ,
        "create": Capability.INVENTORY_MANAGE,
        "history": Capability.INVENTORY_READ,
        "reserve": Capability.INVENTORY_MANAGE,
        "release": Capability.INVENTORY_MANAGE,
        "resolve_missing": Capability.INVENTORY_MANAGE,
        # events: checked per event type below
        "events": None,
    }
    serializer_class = InventoryItemSerializer
    queryset = InventoryItem.objects.none()

    def list(self, request):
        scope = require_scope(request)
        qs = InventorySelectors.list_items(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        f = InventoryItemFilter(request.query_params, queryset=qs)
        if not f.is_valid():
            raise ValidationError(f.errors)
        return paginate(request, f.qs, InventoryItemSerializer)

    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        item = InventorySelectors.get_item(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=path_uuid(pk, label="Inventory item"),
        )
        if item is None:
            raise NotFound("Inventory item not found.")
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_200_OK)

    @extend_schema(request=InventoryItemCreateSerializer, responses={201: InventoryItemSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = InventoryItemCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        item = InventoryLedger.create_item(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            performed_by_id=getattr(request.user, "id", None),
            **ser.validated_data,
        )
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=InventoryEventInputSerializer, responses={201: InventoryEventSerializer})
    @action(detail=True, methods=["post"], url_path="events")
    def events(self, request, pk=None):
        scope = require_scope(request)
        ser = InventoryEventInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        _require_event_capability(self, request, [data["event_type"]])

        event = InventoryLedger.record_event(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=path_uuid(pk, label="Inventory item"),
            event_type=data["event_type"],
            context=_event_context(data, getattr(request.user, "id", None)),
        )
        return Response(InventoryEventSerializer(event).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        parameters=[OpenApiParameter("limit", OpenApiTypes.INT, OpenApiParameter.QUERY, required=False)],
        responses={200: InventoryEventSerializer(many=True)},
    )
    @action(detail=True, methods=["get"], url_path="history")
    def history(self, request, pk=None):
        scope = require_scope(request)
        raw = request.query_params.get("limit")
        try:
            limit = int(raw) if raw else None
        except ValueError:
            raise ValidationError({"limit": "Must be an integer."})

        rows = InventoryLedger.history(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=path_uuid(pk, label="Inventory item"),
            limit=limit,
        )
        return Response(InventoryEventSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(request=ReserveInputSerializer, responses={201: InventoryEventSerializer})
    @action(detail=True, methods=["post"], url_path="reserve")
    def reserve(self, request, pk=None):
        scope = require_scope(request)
        ser = ReserveInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        event = InventoryLedger.reserve(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=path_uuid(pk, label="Inventory item"),
            case_id=ser.validated_data["case_id"],
            performed_by_id=getattr(request.user, "id", None),
            notes=ser.validated_data["notes"],
        )
        return Response(InventoryEventSerializer(event).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=ReleaseInputSerializer, responses={201: InventoryEventSerializer})
    @action(detail=True, methods=["post"], url_path="release")
    def release(self, request, pk=None):
        scope = require_scope(request)
        ser = ReleaseInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        event = InventoryLedger.release(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=path_uuid(pk, label="Inventory item"),
            performed_by_id=getattr(request.user, "id", None),
            notes=ser.validated_data["notes"],
        )
        return Response(InventoryEventSerializer(event).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=ResolveMissingSerializer, responses={201: InventoryEventSerializer})
    @action(detail=True, methods=["post"], url_path="resolve-missing")
    def resolve_missing(self, request, pk=None):
        scope = require_scope(request)
        ser = ResolveMissingSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        event = InventoryLedger.resolve_missing(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=path_uuid(pk, label="Inventory item"),
            resolution_type=ser.validated_data["resolution_type"],
            performed_by_id=getattr(request.user, "id", None),
            notes=ser.validated_data["notes"],
        )
        return Response(InventoryEventSerializer(event).data, status=status.HTTP_201_CREATED)


@extend_schema(tags=["Inventory"])
class InventoryEventViewSet(viewsets.ViewSet):
    """
    Batch entry point for ledger writes. Per-item writes live on InventoryItemViewSet.
    """
    permission_classes = [HasCapability]
    # checked per event type
    required_capabilities = {"bulk": None}

    @extend_schema(request=BulkInventoryEventsSerializer, responses={201: InventoryEventSerializer(many=True)})
    @action(detail=False, methods=["post"], url_path="bulk")
    def bulk(self, request):
        scope = require_scope(request)
        ser = BulkInventoryEventsSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        entries = ser.validated_data["events"]

        _require_event_capability(self, request, [e["event_type"] for e in entries])

        user_id = getattr(request.user, "id", None)
        events = InventoryLedger.record_events_bulk(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            events=[
                BulkInventoryEvent(
                    item_id=e["inventory_item_id"],
                    event_type=e["event_type"],
                    context=_event_context(e, user_id),
                )
                for e in entries
            ],
        )
        return Response(InventoryEventSerializer(events, many=True).data, status=status.HTTP_201_CREATED)


@extend_schema(tags=["Inventory"], request=DeviceScanSerializer)
class DeviceScanView(APIView):
    """
    POST /inventory/device-events/

    Resolves a scanner read to a candidate item. Never writes to the ledger; the
    client confirms and posts a VERIFIED event itself.
    """
    permission_classes = [HasCapability]
    required_capabilities = Capability.VERIFY_SCAN

    def post(self, request):
        scope = require_scope(request)
        ser = DeviceScanSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        item, read = InventorySelectors.find_by_scan(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            raw_value=data["raw_value"],
        )
        logger.info(
            "Device scan from %s (%s/%s) matched item %s",
            data["device_id"] or "keyboard",
            data["device_type"],
            data["payload_type"],
            item.id if item else None,
        )
        return Response(
            {
                "processed": item is not None,
                "processed_item_id": str(item.id) if item else None,
                "candidate": InventoryItemSerializer(item).data if item else None,
                "gs1": read.as_dict(),
                "error": None if item else "No matching inventory item found.",
            },
            status=status.HTTP_200_OK,
        )

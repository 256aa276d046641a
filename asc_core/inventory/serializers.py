from rest_framework import serializers

from asc_core.inventory.models import (
    ADJUSTABLE_AVAILABILITY,
    InventoryEvent,
    InventoryEventType,
    InventoryItem,
    MissingResolutionType,
    SterilityStatus,
)


class InventoryItemSerializer(serializers.ModelSerializer):
    catalog_item_name = serializers.CharField(source="catalog_item.name", read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            "id",
            "catalog_item_id",
            "catalog_item_name",
            "serial_number",
            "lot_number",
            "barcode",
            "location_id",
            "sterility_status",
            "sterility_expires_at",
            "availability_status",
            "reserved_for_case_id",
            "last_verified_at",
            "last_verified_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class InventoryItemCreateSerializer(serializers.Serializer):
    catalog_item_id = serializers.UUIDField()
    serial_number = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    lot_number = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    barcode = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    location_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    sterility_status = serializers.ChoiceField(choices=SterilityStatus.choices, default=SterilityStatus.UNKNOWN)
    sterility_expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class InventoryEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryEvent
        fields = [
            "id",
            "inventory_item_id",
            "event_type",
            "surgical_case_id",
            "location_id",
            "previous_location_id",
            "sterility_status",
            "availability_status",
            "notes",
            "performed_by_id",
            "device_event_id",
            "occurred_at",
            "reported_at",
            "created_at",
        ]
        read_only_fields = fields


class InventoryEventInputSerializer(serializers.Serializer):
    event_type = serializers.ChoiceField(choices=InventoryEventType.choices)
    case_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    location_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    previous_location_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    sterility_status = serializers.ChoiceField(
        choices=SterilityStatus.choices, required=False, allow_null=True, default=None
    )
    sterility_expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")
    device_event_id = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    target_availability = serializers.ChoiceField(
        choices=[(v, v) for v in ADJUSTABLE_AVAILABILITY], required=False, allow_null=True, default=None
    )
    # Device clock; stored for reference only
    reported_at = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if attrs["event_type"] == InventoryEventType.RESERVED and not attrs.get("case_id"):
            raise serializers.ValidationError({"case_id": "Required for RESERVED events."})
        if attrs.get("target_availability") and attrs["event_type"] != InventoryEventType.ADJUSTED:
            raise serializers.ValidationError({"target_availability": "Only valid for ADJUSTED events."})
        return attrs


class BulkInventoryEventEntrySerializer(InventoryEventInputSerializer):
    inventory_item_id = serializers.UUIDField()


class BulkInventoryEventsSerializer(serializers.Serializer):
    events = BulkInventoryEventEntrySerializer(many=True, allow_empty=False, max_length=100)


class DeviceScanSerializer(serializers.Serializer):
    device_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    device_type = serializers.ChoiceField(choices=["barcode", "rfid", "nfc", "other"], default="barcode")
    payload_type = serializers.ChoiceField(choices=["scan", "presence", "input"], default="scan")
    raw_value = serializers.CharField(max_length=512, trim_whitespace=False)
    reported_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class ResolveMissingSerializer(serializers.Serializer):
    resolution_type = serializers.ChoiceField(choices=MissingResolutionType.choices)
    notes = serializers.CharField(max_length=900, required=False, allow_blank=True, default="")


class ReserveInputSerializer(serializers.Serializer):
    case_id = serializers.UUIDField()
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")


class ReleaseInputSerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")

from rest_framework import serializers


class BlockerSerializer(serializers.Serializer):
    code = serializers.CharField()
    severity = serializers.CharField()
    label = serializers.CharField()
    action = serializers.CharField()
    detail = serializers.DictField()


class MissingItemSerializer(serializers.Serializer):
    catalog_item_id = serializers.UUIDField()
    catalog_name = serializers.CharField()
    required_quantity = serializers.IntegerField()
    available_quantity = serializers.IntegerField()
    reason = serializers.CharField()


class ReadinessSignalSerializer(serializers.Serializer):
    """
    Schema for ReadinessSignal.as_dict().
    """
    case_id = serializers.UUIDField()
    state = serializers.ChoiceField(choices=["GREEN", "ORANGE", "RED"])
    blockers = BlockerSerializer(many=True)
    missing_items = MissingItemSerializer(many=True)
    total_required = serializers.IntegerField()
    total_verified = serializers.IntegerField()
    attestation_state = serializers.CharField()
    checklist_statuses = serializers.DictField(child=serializers.CharField())


class DayReadinessRowSerializer(ReadinessSignalSerializer):
    case_number = serializers.CharField()
    procedure_name = serializers.CharField()
    surgeon_id = serializers.IntegerField()
    scheduled_time = serializers.TimeField(allow_null=True)
    is_active = serializers.BooleanField()

from rest_framework import serializers

from asc_core.cases.commands import MAX_DURATION_MINUTES, MAX_REASON_LENGTH, MIN_DURATION_MINUTES
from asc_core.cases.models import CaseRequirement, CaseStatus, CaseStatusEvent, SurgicalCase


class SurgicalCaseSerializer(serializers.ModelSerializer):
    preference_card_id = serializers.SerializerMethodField()

    class Meta:
        model = SurgicalCase
        fields = [
            "id",
            "case_number",
            "surgeon_id",
            "procedure_name",
            "laterality",
            "requested_date",
            "requested_time",
            "scheduled_date",
            "scheduled_time",
            "room_id",
            "estimated_duration_minutes",
            "preference_card_id",
            "preference_card_version_id",
            "status",
            "is_active",
            "activated_at",
            "activated_by_id",
            "approved_at",
            "approved_by_id",
            "rejected_at",
            "rejected_by_id",
            "rejection_reason",
            "is_cancelled",
            "cancelled_at",
            "cancelled_by_id",
            "cancellation_reason",
            "notes",
            "created_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_preference_card_id(self, obj):
        version = obj.preference_card_version
        return str(version.card_id) if version is not None else None


class _ScheduleFieldsMixin(serializers.Serializer):
    estimated_duration_minutes = serializers.IntegerField(
        required=False, allow_null=True, min_value=MIN_DURATION_MINUTES, max_value=MAX_DURATION_MINUTES
    )
    room_id = serializers.UUIDField(required=False, allow_null=True)
    scheduled_time = serializers.TimeField(required=False, allow_null=True)


class CaseCreateSerializer(_ScheduleFieldsMixin):
    surgeon_id = serializers.IntegerField()
    procedure_name = serializers.CharField(max_length=255)
    laterality = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")
    requested_date = serializers.DateField(required=False, allow_null=True)
    requested_time = serializers.TimeField(required=False, allow_null=True)
    scheduled_date = serializers.DateField(required=False, allow_null=True)
    preference_card_id = serializers.UUIDField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    schedule_directly = serializers.BooleanField(required=False, default=False)


class CaseUpdateSerializer(_ScheduleFieldsMixin):
    procedure_name = serializers.CharField(max_length=255, required=False)
    laterality = serializers.CharField(max_length=16, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    requested_date = serializers.DateField(required=False, allow_null=True)
    requested_time = serializers.TimeField(required=False, allow_null=True)
    scheduled_date = serializers.DateField(required=False, allow_null=True)
    preference_card_id = serializers.UUIDField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=CaseStatus.choices, required=False)


class CaseApproveSerializer(_ScheduleFieldsMixin):
    scheduled_date = serializers.DateField()


class CaseRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=MAX_REASON_LENGTH)


class CaseActivateSerializer(serializers.Serializer):
    scheduled_date = serializers.DateField(required=False, allow_null=True)
    scheduled_time = serializers.TimeField(required=False, allow_null=True)


class CaseCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=MAX_REASON_LENGTH, required=False, allow_blank=True, default="")


class CaseRequirementSerializer(serializers.ModelSerializer):
    catalog_item_name = serializers.CharField(source="catalog_item.name", read_only=True)

    class Meta:
        model = CaseRequirement
        fields = ["id", "catalog_item_id", "catalog_item_name", "quantity", "is_override", "notes"]
        read_only_fields = fields


class RequirementItemInputSerializer(serializers.Serializer):
    catalog_item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class SetRequirementsSerializer(serializers.Serializer):
    items = RequirementItemInputSerializer(many=True, allow_empty=True)
    is_override = serializers.BooleanField(required=False, default=True)


class CaseStatusEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = CaseStatusEvent
        fields = [
            "id",
            "surgical_case_id",
            "case_number",
            "from_status",
            "to_status",
            "reason",
            "context",
            "actor_user_id",
            "created_at",
        ]
        read_only_fields = fields


class CaseListParamsSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=CaseStatus.choices, required=False)
    surgeon = serializers.IntegerField(required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    active = serializers.BooleanField(required=False, allow_null=True, default=None)

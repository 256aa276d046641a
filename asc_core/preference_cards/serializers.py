# asc_core/preference_cards/serializers.py
from rest_framework import serializers

from asc_core.preference_cards.models import PreferenceCard, PreferenceCardVersion


class TemplateItemSerializer(serializers.Serializer):
    catalog_item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class PreferenceCardVersionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PreferenceCardVersion
        fields = ["id", "card_id", "version_number", "items", "change_summary", "created_by_id", "created_at"]
        read_only_fields = fields


class PreferenceCardSerializer(serializers.ModelSerializer):
    current_version = PreferenceCardVersionSerializer(read_only=True)

    class Meta:
        model = PreferenceCard
        fields = [
            "id",
            "surgeon_id",
            "procedure_name",
            "description",
            "is_active",
            "current_version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PreferenceCardCreateSerializer(serializers.Serializer):
    surgeon_id = serializers.IntegerField()
    procedure_name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    items = TemplateItemSerializer(many=True, required=False, default=list)


class PublishVersionSerializer(serializers.Serializer):
    items = TemplateItemSerializer(many=True)
    change_summary = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")

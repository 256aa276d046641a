from rest_framework import serializers

from asc_core.checklists.models import ChecklistInstance, ChecklistKind


class ChecklistInstanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChecklistInstance
        fields = [
            "id",
            "surgical_case_id",
            "kind",
            "status",
            "responses",
            "started_at",
            "started_by_id",
            "completed_at",
            "completed_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ChecklistStartSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=ChecklistKind.choices)


class ChecklistCompleteSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=ChecklistKind.choices)
    responses = serializers.DictField(required=False, default=dict)

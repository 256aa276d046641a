from rest_framework import serializers

from asc_core.attestations.models import Attestation, AttestationType


class AttestationSerializer(serializers.ModelSerializer):
    is_voided = serializers.BooleanField(read_only=True)

    class Meta:
        model = Attestation
        fields = [
            "id",
            "surgical_case_id",
            "type",
            "attested_by_id",
            "readiness_state_at_time",
            "notes",
            "is_voided",
            "voided_at",
            "voided_by_id",
            "void_reason",
            "created_at",
        ]
        read_only_fields = fields


class AttestationCreateSerializer(serializers.Serializer):
    case_id = serializers.UUIDField()
    type = serializers.ChoiceField(choices=AttestationType.choices)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")


class AttestationVoidSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")

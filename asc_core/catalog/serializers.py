# asc_core/catalog/serializers.py
from rest_framework import serializers

from asc_core.catalog.models import CatalogCategory, CatalogItem, CatalogSetComponent


class CatalogItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = CatalogItem
        fields = [
            "id",
            "name",
            "category",
            "manufacturer",
            "catalog_number",
            "requires_sterility",
            "is_container",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CatalogItemCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    category = serializers.ChoiceField(choices=CatalogCategory.choices)
    manufacturer = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    catalog_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    requires_sterility = serializers.BooleanField(required=False, default=True)
    is_container = serializers.BooleanField(required=False, default=False)


class SetComponentSerializer(serializers.ModelSerializer):
    component_item_name = serializers.CharField(source="component_item.name", read_only=True)

    class Meta:
        model = CatalogSetComponent
        fields = ["id", "set_item_id", "component_item_id", "component_item_name", "quantity"]
        read_only_fields = fields


class SetComponentInputSerializer(serializers.Serializer):
    component_item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)

# asc_core/inventory/filters.py
import django_filters

from asc_core.inventory.models import AvailabilityStatus, InventoryItem, SterilityStatus


class InventoryItemFilter(django_filters.FilterSet):
    catalog_item = django_filters.UUIDFilter(field_name="catalog_item_id")
    availability_status = django_filters.ChoiceFilter(choices=AvailabilityStatus.choices)
    sterility_status = django_filters.ChoiceFilter(choices=SterilityStatus.choices)
    location = django_filters.UUIDFilter(field_name="location_id")
    reserved_for_case = django_filters.UUIDFilter(field_name="reserved_for_case_id")
    barcode = django_filters.CharFilter(field_name="barcode")

    class Meta:
        model = InventoryItem
        fields = ["catalog_item", "availability_status", "sterility_status", "location", "reserved_for_case", "barcode"]

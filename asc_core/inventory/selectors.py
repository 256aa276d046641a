# asc_core/inventory/selectors.py
from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from django.db.models import QuerySet

from asc_core.inventory.gs1 import GS1Read, parse_gs1
from asc_core.inventory.models import InventoryItem


class InventorySelectors:
    @staticmethod
    def list_items(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[InventoryItem]:
        return (
            InventoryItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id)
            .select_related("catalog_item")
            .order_by("catalog_item__name", "created_at", "id")
        )

    @staticmethod
    def get_item(*, tenant_id: UUID, facility_id: UUID, item_id: UUID) -> InventoryItem | None:
        return (
            InventoryItem.objects.filter(id=item_id, tenant_id=tenant_id, facility_id=facility_id)
            .select_related("catalog_item")
            .first()
        )

    @staticmethod
    def items_by_catalog(
        *, tenant_id: UUID, facility_id: UUID, catalog_item_ids, for_update: bool = False
    ) -> dict[UUID, list[InventoryItem]]:
        """
        Physical units grouped by catalog item, for readiness evaluation.
        With for_update the rows stay locked until the caller's transaction ends.
        """
        grouped: dict[UUID, list[InventoryItem]] = defaultdict(list)
        qs = InventoryItem.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            catalog_item_id__in=list(catalog_item_ids),
        ).order_by("id")
        if for_update:
            qs = qs.select_for_update()
        for item in qs:
            grouped[item.catalog_item_id].append(item)
        return dict(grouped)

    @staticmethod
    def find_by_scan(*, tenant_id: UUID, facility_id: UUID, raw_value: str) -> tuple[InventoryItem | None, GS1Read]:
        """
        Candidate item for a scanner read: exact barcode first, then serial number,
        then the serial carried inside a GS1 code. Read-only.
        """
        read = parse_gs1(raw_value)
        qs = InventoryItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id).select_related("catalog_item")

        item = qs.filter(barcode=raw_value).order_by("created_at", "id").first()
        if item is None:
            item = qs.filter(serial_number=raw_value).order_by("created_at", "id").first()
        if item is None and read.serial:
            item = qs.filter(serial_number=read.serial).order_by("created_at", "id").first()
        return item, read

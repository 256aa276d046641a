# asc_core/catalog/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from asc_core.catalog.models import CatalogItem, CatalogSetComponent


class CatalogSelectors:
    @staticmethod
    def list_items(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        category: str | None = None,
        active: bool | None = None,
        search: str | None = None,
    ) -> QuerySet[CatalogItem]:
        qs = CatalogItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id)
        if category:
            qs = qs.filter(category=category)
        if active is not None:
            qs = qs.filter(is_active=active)
        if search:
            qs = qs.filter(name__icontains=search)
        return qs.order_by("name", "id")

    @staticmethod
    def components(*, tenant_id: UUID, facility_id: UUID, set_item_id: UUID) -> QuerySet[CatalogSetComponent]:
        return (
            CatalogSetComponent.objects.filter(tenant_id=tenant_id, facility_id=facility_id, set_item_id=set_item_id)
            .select_related("component_item")
            .order_by("component_item__name")
        )

    @staticmethod
    def items_by_id(*, tenant_id: UUID, facility_id: UUID, ids) -> dict:
        return {
            item.id: item
            for item in CatalogItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id, id__in=list(ids))
        }

# asc_core/catalog/services.py
from __future__ import annotations

import logging
from uuid import UUID

from django.conf import settings
from django.db import transaction

from asc_core.audit.services import AuditService
from asc_core.catalog.models import CatalogItem, CatalogSetComponent
from asc_core.common.exceptions import DomainValidationError, NotFound

logger = logging.getLogger(__name__)

DEFAULT_MAX_SET_DEPTH = 10


def _max_depth() -> int:
    return int(getattr(settings, "ASC_CATALOG_SET_MAX_DEPTH", DEFAULT_MAX_SET_DEPTH))


def reaches(*, tenant_id: UUID, facility_id: UUID, start_id: UUID, target_id: UUID, max_depth: int) -> bool:
    """
    True when `target_id` is reachable from `start_id` by following set -> component
    edges. Breadth-first, one query per level, at most `max_depth` levels.

    Raises DomainValidationError when the nesting goes deeper than `max_depth`, since
    the unexplored part of the graph could still close a cycle.
    """
    frontier = {start_id}
    seen = {start_id}
    for _ in range(max_depth):
        if target_id in frontier:
            return True
        children = set(
            CatalogSetComponent.objects.filter(
                tenant_id=tenant_id,
                facility_id=facility_id,
                set_item_id__in=frontier,
            ).values_list("component_item_id", flat=True)
        )
        frontier = children - seen
        if not frontier:
            return False
        seen |= frontier
    if target_id in frontier:
        return True
    unexplored = CatalogSetComponent.objects.filter(
        tenant_id=tenant_id,
        facility_id=facility_id,
        set_item_id__in=frontier,
    ).exclude(component_item_id__in=seen)
    if not unexplored.exists():
        return False
    raise DomainValidationError(
        "Set nesting is too deep.",
        details={"max_depth": max_depth, "component_item_id": str(start_id)},
    )


class CatalogService:
    @staticmethod
    def _get_item(*, tenant_id: UUID, facility_id: UUID, item_id: UUID) -> CatalogItem:
        try:
            return CatalogItem.objects.get(id=item_id, tenant_id=tenant_id, facility_id=facility_id)
        except CatalogItem.DoesNotExist:
            raise NotFound("Catalog item not found.")

    @staticmethod
    @transaction.atomic
    def create_item(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        name: str,
        category: str,
        requires_sterility: bool = True,
        is_container: bool = False,
        manufacturer: str = "",
        catalog_number: str = "",
    ) -> CatalogItem:
        item = CatalogItem.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            name=name,
            category=category,
            requires_sterility=requires_sterility,
            is_container=is_container,
            manufacturer=manufacturer,
            catalog_number=catalog_number,
        )
        AuditService.log(
            event_code="catalog.item_created",
            entity_type="CatalogItem",
            entity_id=item.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"name": name, "category": category},
        )
        return item

    @staticmethod
    @transaction.atomic
    def add_set_component(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        set_item_id: UUID,
        component_item_id: UUID,
        quantity: int = 1,
    ) -> CatalogSetComponent:
        """
        Add (or re-quantify) a component of a container item.

        Refuses self-containment and any edge that would close a cycle: if the new set is
        already reachable from the component, adding set -> component loops.
        """
        if quantity < 1:
            raise DomainValidationError("Quantity must be at least 1.")
        if set_item_id == component_item_id:
            raise DomainValidationError("A set cannot contain itself.")

        set_item = CatalogService._get_item(tenant_id=tenant_id, facility_id=facility_id, item_id=set_item_id)
        component = CatalogService._get_item(tenant_id=tenant_id, facility_id=facility_id, item_id=component_item_id)

        if not set_item.is_container:
            raise DomainValidationError("Only container items can have components.")

        max_depth = _max_depth()
        if reaches(
            tenant_id=tenant_id,
            facility_id=facility_id,
            start_id=component.id,
            target_id=set_item.id,
            max_depth=max_depth,
        ):
            logger.info("Refused set component %s -> %s: would create a cycle", set_item.id, component.id)
            raise DomainValidationError(
                "Adding this component would create a circular set reference.",
                details={"set_item_id": str(set_item.id), "component_item_id": str(component.id)},
            )

        row, _ = CatalogSetComponent.objects.update_or_create(
            set_item=set_item,
            component_item=component,
            defaults={"tenant_id": tenant_id, "facility_id": facility_id, "quantity": quantity},
        )

        AuditService.log(
            event_code="catalog.set_component_added",
            entity_type="CatalogItem",
            entity_id=set_item.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"component_item_id": str(component.id), "quantity": quantity},
        )
        return row

    @staticmethod
    @transaction.atomic
    def remove_set_component(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        set_item_id: UUID,
        component_item_id: UUID,
    ) -> None:
        deleted, _ = CatalogSetComponent.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            set_item_id=set_item_id,
            component_item_id=component_item_id,
        ).delete()
        if not deleted:
            raise NotFound("Set component not found.")

        AuditService.log(
            event_code="catalog.set_component_removed",
            entity_type="CatalogItem",
            entity_id=set_item_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"component_item_id": str(component_item_id)},
        )

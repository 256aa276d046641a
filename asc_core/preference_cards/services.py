# asc_core/preference_cards/services.py
from __future__ import annotations

import logging
from typing import Iterable, Mapping
from uuid import UUID

from django.db import transaction
from django.db.models import Max

from asc_core.audit.services import AuditService
from asc_core.catalog.models import CatalogItem
from asc_core.common.exceptions import DomainValidationError, NotFound
from asc_core.iam.services.membership import is_user_member_of_facility
from asc_core.preference_cards.models import PreferenceCard, PreferenceCardVersion

logger = logging.getLogger(__name__)


def normalize_items(*, tenant_id: UUID, facility_id: UUID, items: Iterable[Mapping]) -> list[dict]:
    """
    Validate a template item list and return its stored form.

    Every catalog id must exist in scope and appear once; quantities are >= 1.
    """
    normalized: list[dict] = []
    seen: set[str] = set()
    duplicates: list[str] = []

    for raw in items or []:
        try:
            catalog_item_id = str(UUID(str(raw["catalog_item_id"])))
        except (KeyError, TypeError, ValueError):
            raise DomainValidationError("Each item needs a valid catalog_item_id.")
        try:
            quantity = int(raw.get("quantity", 1))
        except (TypeError, ValueError):
            quantity = 0
        if quantity < 1:
            raise DomainValidationError("Quantity must be at least 1.", details={"catalog_item_id": catalog_item_id})
        if catalog_item_id in seen:
            duplicates.append(catalog_item_id)
            continue
        seen.add(catalog_item_id)
        normalized.append(
            {
                "catalog_item_id": catalog_item_id,
                "quantity": quantity,
                "notes": str(raw.get("notes") or ""),
            }
        )

    if duplicates:
        raise DomainValidationError("Duplicate catalog items in item list.", details={"catalog_item_ids": duplicates})

    known = {
        str(pk)
        for pk in CatalogItem.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            id__in=list(seen),
        ).values_list("id", flat=True)
    }
    unknown = sorted(seen - known)
    if unknown:
        raise DomainValidationError("Unknown catalog items.", details={"catalog_item_ids": unknown})

    return normalized


class PreferenceCardService:
    @staticmethod
    def get_card(*, tenant_id: UUID, facility_id: UUID, card_id: UUID) -> PreferenceCard:
        try:
            return PreferenceCard.objects.select_related("current_version").get(
                id=card_id,
                tenant_id=tenant_id,
                facility_id=facility_id,
            )
        except PreferenceCard.DoesNotExist:
            raise NotFound("Preference card not found.")

    @staticmethod
    def current_version(*, tenant_id: UUID, facility_id: UUID, card_id: UUID) -> PreferenceCardVersion | None:
        card = PreferenceCardService.get_card(tenant_id=tenant_id, facility_id=facility_id, card_id=card_id)
        return card.current_version

    @staticmethod
    @transaction.atomic
    def create_card(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        surgeon_id: int,
        procedure_name: str,
        description: str = "",
        items: Iterable[Mapping] = (),
    ) -> PreferenceCard:
        if not is_user_member_of_facility(user_id=surgeon_id, tenant_id=tenant_id, facility_id=facility_id):
            raise DomainValidationError("Surgeon is not a member of this facility.")

        card = PreferenceCard.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            surgeon_id=surgeon_id,
            procedure_name=procedure_name,
            description=description,
        )
        PreferenceCardService.publish_version(
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            card_id=card.id,
            items=items,
            change_summary="Initial version",
        )
        card.refresh_from_db()
        return card

    @staticmethod
    @transaction.atomic
    def publish_version(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        card_id: UUID,
        items: Iterable[Mapping],
        change_summary: str = "",
    ) -> PreferenceCardVersion:
        """
        Freeze a new item list as the card's next version and make it current.
        Cases already bound to older versions keep them.
        """
        card = (
            PreferenceCard.objects.select_for_update()
            .filter(id=card_id, tenant_id=tenant_id, facility_id=facility_id)
            .first()
        )
        if card is None:
            raise NotFound("Preference card not found.")

        normalized = normalize_items(tenant_id=tenant_id, facility_id=facility_id, items=items)
        last = card.versions.aggregate(n=Max("version_number"))["n"] or 0

        version = PreferenceCardVersion.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            card=card,
            version_number=last + 1,
            items=normalized,
            change_summary=change_summary,
            created_by_id=actor_user_id,
        )
        card.current_version = version
        card.save(update_fields=["current_version", "updated_at"])

        logger.info("Preference card %s published version %s (%s items)", card.id, version.version_number, len(normalized))
        AuditService.log(
            event_code="preference_card.version_published",
            entity_type="PreferenceCard",
            entity_id=card.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"version_id": str(version.id), "version_number": version.version_number},
        )
        return version

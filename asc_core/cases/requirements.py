# asc_core/cases/requirements.py
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, Sequence
from uuid import UUID

from django.db import transaction

from asc_core.catalog.models import CatalogItem
from asc_core.cases.commands import RequirementItem
from asc_core.cases.models import CaseRequirement, SurgicalCase
from asc_core.common.exceptions import DomainValidationError
from asc_core.preference_cards.models import PreferenceCardVersion

logger = logging.getLogger(__name__)


def _unknown_catalog_ids(*, tenant_id: UUID, facility_id: UUID, ids: Iterable[UUID]) -> list[str]:
    wanted = {UUID(str(i)) for i in ids}
    if not wanted:
        return []
    known = set(
        CatalogItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id, id__in=wanted).values_list(
            "id", flat=True
        )
    )
    return sorted(str(i) for i in wanted - known)


def _template_lines(version: PreferenceCardVersion) -> "OrderedDict[UUID, tuple[int, str]]":
    """
    Catalog id -> (quantity, notes) for a template. Repeated ids are summed.
    """
    lines: "OrderedDict[UUID, tuple[int, str]]" = OrderedDict()
    for raw in version.items or []:
        try:
            catalog_item_id = UUID(str(raw["catalog_item_id"]))
            quantity = int(raw.get("quantity", 1))
        except (KeyError, TypeError, ValueError):
            raise DomainValidationError(
                "Template contains a malformed item.", details={"version_id": str(version.id)}
            )
        if quantity < 1:
            raise DomainValidationError(
                "Template quantities must be at least 1.", details={"catalog_item_id": str(catalog_item_id)}
            )
        if catalog_item_id in lines:
            prev_qty, prev_notes = lines[catalog_item_id]
            lines[catalog_item_id] = (prev_qty + quantity, prev_notes)
        else:
            lines[catalog_item_id] = (quantity, str(raw.get("notes") or ""))
    return lines


class RequirementSynchronizer:
    """
    Keeps a case's expected-item list in step with its bound template.

    Rows with is_override=True are surgeon-authored and are never touched by bind().
    Callers hold the case row lock.
    """

    @staticmethod
    @transaction.atomic
    def bind(*, case: SurgicalCase, version: PreferenceCardVersion | None) -> list[CaseRequirement]:
        scope = {"tenant_id": case.tenant_id, "facility_id": case.facility_id}
        lines = _template_lines(version) if version is not None else OrderedDict()

        unknown = _unknown_catalog_ids(ids=lines.keys(), **scope)
        if unknown:
            raise DomainValidationError("Template references unknown catalog items.", details={"catalog_item_ids": unknown})

        CaseRequirement.objects.filter(surgical_case=case, is_override=False).delete()

        claimed = set(
            CaseRequirement.objects.filter(surgical_case=case, is_override=True).values_list("catalog_item_id", flat=True)
        )
        rows = [
            CaseRequirement(
                surgical_case=case,
                catalog_item_id=catalog_item_id,
                quantity=quantity,
                notes=notes,
                is_override=False,
                **scope,
            )
            for catalog_item_id, (quantity, notes) in lines.items()
            if catalog_item_id not in claimed
        ]
        CaseRequirement.objects.bulk_create(rows, ignore_conflicts=True)

        logger.info(
            "Bound case %s to template %s (%s rows, %s skipped for overrides)",
            case.id,
            getattr(version, "id", None),
            len(rows),
            len(lines) - len(rows),
        )
        return list(CaseRequirement.objects.filter(surgical_case=case).order_by("created_at", "id"))

    @staticmethod
    @transaction.atomic
    def set_overrides(
        *,
        case: SurgicalCase,
        items: Sequence[RequirementItem],
        is_override: bool = True,
    ) -> list[CaseRequirement]:
        """
        Replace the override rows (is_override=True) or the system rows (False)
        with `items`. Input is fully validated before anything is written.
        """
        scope = {"tenant_id": case.tenant_id, "facility_id": case.facility_id}

        seen: set[UUID] = set()
        duplicates: list[str] = []
        for item in items:
            if item.quantity < 1:
                raise DomainValidationError(
                    "Quantity must be at least 1.", details={"catalog_item_id": str(item.catalog_item_id)}
                )
            if item.catalog_item_id in seen:
                duplicates.append(str(item.catalog_item_id))
            seen.add(item.catalog_item_id)
        if duplicates:
            raise DomainValidationError("Duplicate catalog items in request.", details={"catalog_item_ids": duplicates})

        unknown = _unknown_catalog_ids(ids=seen, **scope)
        if unknown:
            raise DomainValidationError("Unknown catalog items.", details={"catalog_item_ids": unknown})

        existing = CaseRequirement.objects.filter(surgical_case=case)
        if is_override:
            existing.filter(is_override=True).delete()
            # Template rows for the same slot become the override
            existing.filter(is_override=False, catalog_item_id__in=seen).delete()
            to_write = list(items)
        else:
            existing.filter(is_override=False).delete()
            claimed = set(existing.filter(is_override=True).values_list("catalog_item_id", flat=True))
            to_write = [i for i in items if i.catalog_item_id not in claimed]

        CaseRequirement.objects.bulk_create(
            [
                CaseRequirement(
                    surgical_case=case,
                    catalog_item_id=i.catalog_item_id,
                    quantity=i.quantity,
                    notes=i.notes,
                    is_override=is_override,
                    **scope,
                )
                for i in to_write
            ]
        )
        logger.info("Case %s requirements replaced (override=%s, %s rows)", case.id, is_override, len(to_write))
        return list(CaseRequirement.objects.filter(surgical_case=case).order_by("created_at", "id"))

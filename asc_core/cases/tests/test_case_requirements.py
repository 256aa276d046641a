# asc_core/cases/tests/test_case_requirements.py
import uuid

import pytest

from asc_core.cases.commands import RequirementItem, UpdateCaseCommand
from asc_core.cases.models import CaseRequirement
from asc_core.cases.requirements import RequirementSynchronizer
from asc_core.cases.services import CaseService
from asc_core.common.exceptions import DomainValidationError, Forbidden, InvalidState
from asc_core.iam.capabilities import Role, resolve_capabilities
from asc_core.preference_cards.models import PreferenceCardVersion
from asc_core.preference_cards.services import PreferenceCardService

pytestmark = pytest.mark.django_db


def _rows(case):
    return {
        (r.catalog_item_id, r.quantity, r.is_override)
        for r in CaseRequirement.objects.filter(surgical_case=case)
    }


def test_rebinding_same_template_is_idempotent(tenant, facility, user, admin_caps, make_case, preference_card):
    case = make_case(preference_card_id=preference_card.id)
    before = _rows(case)

    for _ in range(2):
        CaseService.update(
            tenant_id=tenant.id,
            facility_id=facility.id,
            actor_user_id=user.id,
            case_id=case.id,
            command=UpdateCaseCommand(preference_card_id=preference_card.id),
            capabilities=admin_caps,
        )
    assert _rows(case) == before
    assert CaseRequirement.objects.filter(surgical_case=case).count() == 3


def test_overrides_survive_template_rebind(tenant, facility, surgeon, user, admin_caps, make_case, preference_card, catalog_items):
    case = make_case(preference_card_id=preference_card.id)
    rongeur = catalog_items[0]

    CaseService.set_requirements(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=surgeon.id,
        case_id=case.id,
        items=[RequirementItem(catalog_item_id=rongeur.id, quantity=2)],
    )
    assert (rongeur.id, 2, True) in _rows(case)
    assert (rongeur.id, 1, False) not in _rows(case)

    PreferenceCardService.publish_version(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=user.id,
        card_id=preference_card.id,
        items=[{"catalog_item_id": str(c.id), "quantity": 4} for c in catalog_items],
    )
    CaseService.update(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=user.id,
        case_id=case.id,
        command=UpdateCaseCommand(preference_card_id=preference_card.id),
        capabilities=admin_caps,
    )

    assert _rows(case) == {
        (rongeur.id, 2, True),
        (catalog_items[1].id, 4, False),
        (catalog_items[2].id, 4, False),
    }


def test_unlinking_template_keeps_only_overrides(tenant, facility, surgeon, user, admin_caps, make_case, preference_card, catalog_items):
    case = make_case(preference_card_id=preference_card.id)
    CaseService.set_requirements(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=surgeon.id,
        case_id=case.id,
        items=[RequirementItem(catalog_item_id=catalog_items[2].id, quantity=1, notes="Spare")],
    )

    case = CaseService.update(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=user.id,
        case_id=case.id,
        command=UpdateCaseCommand(preference_card_id=None),
        capabilities=admin_caps,
    )
    assert case.preference_card_version_id is None
    assert _rows(case) == {(catalog_items[2].id, 1, True)}


def test_bind_sums_duplicate_template_lines(tenant, facility, make_case, preference_card, catalog_items):
    case = make_case()
    version = PreferenceCardVersion.objects.create(
        tenant_id=tenant.id,
        facility_id=facility.id,
        card=preference_card,
        version_number=99,
        items=[
            {"catalog_item_id": str(catalog_items[0].id), "quantity": 1},
            {"catalog_item_id": str(catalog_items[0].id), "quantity": 2},
        ],
    )

    RequirementSynchronizer.bind(case=case, version=version)
    assert _rows(case) == {(catalog_items[0].id, 3, False)}


def test_set_requirements_validates_before_writing(tenant, facility, surgeon, make_case, preference_card, catalog_items):
    case = make_case(preference_card_id=preference_card.id)
    before = _rows(case)
    scope = {"tenant_id": tenant.id, "facility_id": facility.id, "actor_user_id": surgeon.id, "case_id": case.id}

    with pytest.raises(DomainValidationError):
        CaseService.set_requirements(
            **scope,
            items=[
                RequirementItem(catalog_item_id=catalog_items[0].id),
                RequirementItem(catalog_item_id=catalog_items[0].id),
            ],
        )
    with pytest.raises(DomainValidationError):
        CaseService.set_requirements(**scope, items=[RequirementItem(catalog_item_id=uuid.uuid4())])
    with pytest.raises(DomainValidationError):
        CaseService.set_requirements(**scope, items=[RequirementItem(catalog_item_id=catalog_items[1].id, quantity=0)])

    assert _rows(case) == before


def test_only_surgeon_or_override_capability_may_edit(tenant, facility, make_user, make_case, catalog_items):
    case = make_case()
    scheduler = make_user("scheduler", Role.SCHEDULER)
    items = [RequirementItem(catalog_item_id=catalog_items[0].id)]

    with pytest.raises(Forbidden):
        CaseService.set_requirements(
            tenant_id=tenant.id,
            facility_id=facility.id,
            actor_user_id=scheduler.id,
            case_id=case.id,
            items=items,
            capabilities=resolve_capabilities([Role.SCHEDULER]),
        )

    rows = CaseService.set_requirements(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=scheduler.id,
        case_id=case.id,
        items=items,
        capabilities=resolve_capabilities([Role.ADMIN]),
    )
    assert len(rows) == 1


def test_cancelled_case_requirements_are_frozen(tenant, facility, surgeon, user, make_case, catalog_items):
    case = make_case()
    CaseService.cancel(tenant_id=tenant.id, facility_id=facility.id, actor_user_id=user.id, case_id=case.id)

    with pytest.raises(InvalidState):
        CaseService.set_requirements(
            tenant_id=tenant.id,
            facility_id=facility.id,
            actor_user_id=surgeon.id,
            case_id=case.id,
            items=[RequirementItem(catalog_item_id=catalog_items[0].id)],
        )

# asc_core/preference_cards/tests/test_preference_cards.py
import uuid

import pytest

from asc_core.cases.models import CaseRequirement
from asc_core.common.exceptions import DomainValidationError
from asc_core.preference_cards.models import PreferenceCardVersion
from asc_core.preference_cards.services import PreferenceCardService, normalize_items
from asc_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_create_card_publishes_first_version(preference_card, catalog_items):
    version = preference_card.current_version
    assert version.version_number == 1
    assert [i["catalog_item_id"] for i in version.items] == [str(c.id) for c in catalog_items]
    assert version.change_summary == "Initial version"


def test_normalize_items_rejects_bad_input(tenant, facility, catalog_items):
    scope = {"tenant_id": tenant.id, "facility_id": facility.id}
    good = str(catalog_items[0].id)

    with pytest.raises(DomainValidationError):
        normalize_items(**scope, items=[{"catalog_item_id": good}, {"catalog_item_id": good}])
    with pytest.raises(DomainValidationError):
        normalize_items(**scope, items=[{"catalog_item_id": good, "quantity": 0}])
    with pytest.raises(DomainValidationError):
        normalize_items(**scope, items=[{"catalog_item_id": "nope"}])
    with pytest.raises(DomainValidationError):
        normalize_items(**scope, items=[{"catalog_item_id": str(uuid.uuid4())}])

    assert normalize_items(**scope, items=[{"catalog_item_id": good}]) == [
        {"catalog_item_id": good, "quantity": 1, "notes": ""}
    ]


def test_new_version_does_not_touch_bound_cases(tenant, facility, user, preference_card, catalog_items, make_case):
    case = make_case(preference_card_id=preference_card.id)
    bound_version = case.preference_card_version_id

    v2 = PreferenceCardService.publish_version(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=user.id,
        card_id=preference_card.id,
        items=[{"catalog_item_id": str(catalog_items[0].id), "quantity": 5}],
        change_summary="Trimmed list",
    )

    preference_card.refresh_from_db()
    assert preference_card.current_version_id == v2.id
    assert v2.version_number == 2
    case.refresh_from_db()
    assert case.preference_card_version_id == bound_version
    assert CaseRequirement.objects.filter(surgical_case=case).count() == 3
    assert PreferenceCardVersion.objects.filter(card=preference_card).count() == 2


def test_card_surgeon_must_belong_to_facility(tenant, facility, user, django_user_model):
    outsider = django_user_model.objects.create_user(username="visiting", password="x")
    with pytest.raises(DomainValidationError):
        PreferenceCardService.create_card(
            tenant_id=tenant.id,
            facility_id=facility.id,
            actor_user_id=user.id,
            surgeon_id=outsider.id,
            procedure_name="ACL Reconstruction",
        )


def test_preference_card_api(api_client, tenant, facility, surgeon, catalog_items):
    res = api_client.post(
        "/api/v1/preference-cards/",
        {
            "surgeon_id": surgeon.id,
            "procedure_name": "Rotator Cuff Repair",
            "items": [{"catalog_item_id": str(catalog_items[1].id), "quantity": 2}],
        },
        format="json",
        **scoped(tenant, facility),
    )
    assert res.status_code == 201, res.content
    card_id = res.json()["id"]
    assert res.json()["current_version"]["version_number"] == 1

    url = f"/api/v1/preference-cards/{card_id}/versions/"
    res = api_client.post(
        url,
        {"items": [{"catalog_item_id": str(catalog_items[2].id)}], "change_summary": "Swap forceps"},
        format="json",
        **scoped(tenant, facility),
    )
    assert res.status_code == 201

    res = api_client.get(url, **scoped(tenant, facility))
    assert [v["version_number"] for v in res.json()] == [2, 1]

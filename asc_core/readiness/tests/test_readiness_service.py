# asc_core/readiness/tests/test_readiness_service.py
from datetime import timedelta

import pytest
from django.db import transaction
from django.utils import timezone

from asc_core.attestations.models import AttestationType
from asc_core.attestations.services import AttestationService
from asc_core.iam.capabilities import Role, resolve_capabilities
from asc_core.inventory.models import InventoryEventType
from asc_core.inventory.services import InventoryLedger
from asc_core.readiness.engine import BlockerCode, MissingReason
from asc_core.readiness.services import ReadinessService
from asc_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


@pytest.fixture
def scope(tenant, facility):
    return {"tenant_id": tenant.id, "facility_id": facility.id}


@pytest.fixture
def day():
    return timezone.localdate() + timedelta(days=1)


@pytest.fixture
def carded_case(make_case, preference_card, day):
    return make_case(schedule_directly=True, scheduled_date=day, preference_card_id=preference_card.id)


def _verify(scope, items):
    for i in items:
        InventoryLedger.record_event(**scope, item_id=i.id, event_type=InventoryEventType.VERIFIED)


def test_case_moves_from_red_to_green(scope, make_user, carded_case, catalog_items, stock):
    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert signal.state == "RED"
    assert {m.reason for m in signal.missing_items} == {MissingReason.NOT_IN_INVENTORY}
    assert signal.total_required == 3

    items = [i for c in catalog_items for i in stock(c)]
    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert signal.state == "ORANGE"
    assert [b.code for b in signal.blockers] == [BlockerCode.ITEMS_UNVERIFIED, BlockerCode.ATTESTATION_REQUIRED]

    _verify(scope, items)
    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert signal.state == "ORANGE"
    assert signal.total_verified == 3

    circulator = make_user("circulator", Role.CIRCULATOR)
    caps = resolve_capabilities([Role.CIRCULATOR])
    att = AttestationService.attest(
        **scope,
        actor_user_id=circulator.id,
        case_id=carded_case.id,
        type=AttestationType.CASE_READINESS,
        capabilities=caps,
    )
    assert att.readiness_state_at_time == "ORANGE"
    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert signal.state == "GREEN"
    assert signal.blockers == ()

    AttestationService.void(**scope, actor_user_id=circulator.id, attestation_id=att.id, capabilities=caps)
    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert signal.state == "RED"
    assert [b.code for b in signal.blockers] == [BlockerCode.ATTESTATION_VOIDED]


def test_sterility_must_last_until_case_day(scope, carded_case, catalog_items, stock):
    for c in catalog_items:
        stock(c, sterility_expires_at=timezone.now() - timedelta(hours=1))

    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert {m.reason for m in signal.missing_items} == {MissingReason.STERILITY_EXPIRED}


def test_item_reserved_elsewhere_is_not_counted(scope, make_case, carded_case, catalog_items, stock, day):
    other = make_case(schedule_directly=True, scheduled_date=day)
    [held] = stock(catalog_items[0])
    InventoryLedger.reserve(**scope, item_id=held.id, case_id=other.id)

    signal = ReadinessService.compute(**scope, case_id=carded_case.id)
    by_catalog = {m.catalog_item_id: m for m in signal.missing_items}
    assert by_catalog[catalog_items[0].id].reason == MissingReason.NOT_AVAILABLE


def test_compute_is_repeatable(scope, carded_case, catalog_items, stock):
    for c in catalog_items[:2]:
        stock(c, count=2)
    first = ReadinessService.compute(**scope, case_id=carded_case.id)
    second = ReadinessService.compute(**scope, case_id=carded_case.id)
    assert first.as_dict() == second.as_dict()


def test_cache_is_written_and_dropped_on_change(scope, carded_case, catalog_items, stock):
    [item] = stock(catalog_items[0])
    signal = ReadinessService.compute(**scope, case_id=carded_case.id)

    cached = ReadinessService.cached(**scope, case_id=carded_case.id)
    assert cached.state == signal.state
    assert cached.payload == signal.as_dict()

    InventoryLedger.record_event(**scope, item_id=item.id, event_type=InventoryEventType.VERIFIED)
    assert ReadinessService.cached(**scope, case_id=carded_case.id) is None


def test_compute_inside_an_open_transaction_sees_its_writes(scope, carded_case, catalog_items, stock):
    with transaction.atomic():
        items = [i for c in catalog_items for i in stock(c)]
        _verify(scope, items)
        signal = ReadinessService.compute(**scope, case_id=carded_case.id)
        assert ReadinessService.cached(**scope, case_id=carded_case.id).payload == signal.as_dict()

    assert signal.total_verified == 3
    assert signal.missing_items == ()


def test_cache_can_be_disabled(scope, settings, carded_case):
    settings.ASC_READINESS_CACHE_ENABLED = False
    ReadinessService.compute(**scope, case_id=carded_case.id)
    assert ReadinessService.cached(**scope, case_id=carded_case.id) is None


def test_day_readiness_view(api_client, tenant, facility, user, carded_case, make_case, day):
    make_case(schedule_directly=True, scheduled_date=day + timedelta(days=1))

    res = api_client.get(f"/api/v1/readiness/?date={day.isoformat()}", **scoped(tenant, facility))
    assert res.status_code == 200
    body = res.json()
    assert body["date"] == day.isoformat()
    assert body["summary"] == {"total": 1, "green": 0, "orange": 0, "red": 1}
    [row] = body["cases"]
    assert row["case_number"] == carded_case.case_number
    assert row["blockers"][0]["code"] == BlockerCode.MISSING_ITEMS

    res = api_client.get("/api/v1/readiness/?date=tomorrow", **scoped(tenant, facility))
    assert res.status_code == 400

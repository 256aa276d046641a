# asc_core/inventory/tests/test_inventory_api.py
import pytest

from asc_core.iam.capabilities import Role
from asc_core.inventory.models import AvailabilityStatus, InventoryEventType
from asc_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_create_list_and_filter_items(api_client, tenant, facility, catalog_items):
    for c in catalog_items[:2]:
        res = api_client.post(
            "/api/v1/inventory/items/",
            {"catalog_item_id": str(c.id), "sterility_status": "STERILE", "barcode": f"BC-{c.name[:4]}"},
            format="json",
            **scoped(tenant, facility),
        )
        assert res.status_code == 201, res.content

    res = api_client.get("/api/v1/inventory/items/", **scoped(tenant, facility))
    assert res.status_code == 200
    assert res.json()["count"] == 2

    res = api_client.get(f"/api/v1/inventory/items/?catalog_item={catalog_items[0].id}", **scoped(tenant, facility))
    [row] = res.json()["results"]
    assert row["catalog_item_name"] == catalog_items[0].name


def test_scanner_role_may_verify_but_not_move(client_for, make_user, tenant, facility, catalog_items, stock):
    scrub = make_user("scrub", Role.SCRUB)
    [item] = stock(catalog_items[0])
    client = client_for(scrub)
    url = f"/api/v1/inventory/items/{item.id}/events/"

    res = client.post(url, {"event_type": InventoryEventType.VERIFIED}, format="json", **scoped(tenant, facility))
    assert res.status_code == 201
    assert res.json()["event_type"] == InventoryEventType.VERIFIED

    res = client.post(url, {"event_type": InventoryEventType.EXPIRED}, format="json", **scoped(tenant, facility))
    assert res.status_code == 403


def test_reserved_event_requires_case(api_client, tenant, facility, catalog_items, stock):
    [item] = stock(catalog_items[0])
    res = api_client.post(
        f"/api/v1/inventory/items/{item.id}/events/",
        {"event_type": InventoryEventType.RESERVED},
        format="json",
        **scoped(tenant, facility),
    )
    assert res.status_code == 400


def test_reserve_conflict_and_release(api_client, tenant, facility, catalog_items, stock, make_case):
    first, second = make_case(), make_case()
    [item] = stock(catalog_items[0])
    url = f"/api/v1/inventory/items/{item.id}"

    res = api_client.post(f"{url}/reserve/", {"case_id": str(first.id)}, format="json", **scoped(tenant, facility))
    assert res.status_code == 201

    res = api_client.post(f"{url}/reserve/", {"case_id": str(second.id)}, format="json", **scoped(tenant, facility))
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "invalid_state"

    res = api_client.post(f"{url}/release/", {}, format="json", **scoped(tenant, facility))
    assert res.status_code == 201

    res = api_client.get(f"{url}/", **scoped(tenant, facility))
    assert res.json()["availability_status"] == AvailabilityStatus.AVAILABLE


def test_history_endpoint(api_client, tenant, facility, catalog_items, stock):
    [item] = stock(catalog_items[0])
    url = f"/api/v1/inventory/items/{item.id}/history/"

    res = api_client.get(url, **scoped(tenant, facility))
    assert res.status_code == 200
    assert [e["event_type"] for e in res.json()] == [InventoryEventType.RECEIVED]

    res = api_client.get(f"{url}?limit=abc", **scoped(tenant, facility))
    assert res.status_code == 400


def test_bulk_events_endpoint(api_client, client_for, make_user, tenant, facility, catalog_items, stock):
    first, second = stock(catalog_items[0], count=2)
    body = {
        "events": [
            {"inventory_item_id": str(first.id), "event_type": InventoryEventType.VERIFIED},
            {"inventory_item_id": str(second.id), "event_type": InventoryEventType.VERIFIED},
        ]
    }

    res = api_client.post("/api/v1/inventory/events/bulk/", body, format="json", **scoped(tenant, facility))
    assert res.status_code == 201, res.content
    assert [e["inventory_item_id"] for e in res.json()] == [str(first.id), str(second.id)]

    res = api_client.post("/api/v1/inventory/events/bulk/", {"events": []}, format="json", **scoped(tenant, facility))
    assert res.status_code == 400

    scrub = client_for(make_user("scrub", Role.SCRUB))
    body["events"][1]["event_type"] = InventoryEventType.EXPIRED
    res = scrub.post("/api/v1/inventory/events/bulk/", body, format="json", **scoped(tenant, facility))
    assert res.status_code == 403


def test_device_scan_finds_candidate_without_writing(api_client, tenant, facility, catalog_items, stock):
    [by_barcode] = stock(catalog_items[0], barcode="0100012345")
    [by_serial] = stock(catalog_items[1])
    events_before = by_serial.events.count()
    url = "/api/v1/inventory/device-events/"

    res = api_client.post(url, {"raw_value": "0100012345"}, format="json", **scoped(tenant, facility))
    assert res.status_code == 200
    assert res.json()["processed_item_id"] == str(by_barcode.id)

    gs1 = f"(01)00614141999996(21){by_serial.serial_number}"
    res = api_client.post(url, {"raw_value": gs1, "device_type": "barcode"}, format="json", **scoped(tenant, facility))
    body = res.json()
    assert body["processed"] is True
    assert body["candidate"]["id"] == str(by_serial.id)
    assert body["gs1"]["gtin"] == "00614141999996"

    res = api_client.post(url, {"raw_value": "nothing-here"}, format="json", **scoped(tenant, facility))
    assert res.json()["processed"] is False
    assert res.json()["error"]

    assert by_serial.events.count() == events_before


def test_resolve_missing_endpoint(api_client, tenant, facility, catalog_items, stock):
    [item] = stock(catalog_items[0])
    url = f"/api/v1/inventory/items/{item.id}"

    res = api_client.post(
        f"{url}/events/",
        {"event_type": InventoryEventType.ADJUSTED, "target_availability": AvailabilityStatus.MISSING},
        format="json",
        **scoped(tenant, facility),
    )
    assert res.status_code == 201
    assert res.json()["availability_status"] == AvailabilityStatus.MISSING

    res = api_client.post(
        f"{url}/resolve-missing/", {"resolution_type": "LOCATED"}, format="json", **scoped(tenant, facility)
    )
    assert res.status_code == 201
    assert res.json()["event_type"] == InventoryEventType.MISSING_RESOLVED

    res = api_client.post(
        f"{url}/resolve-missing/", {"resolution_type": "LOCATED"}, format="json", **scoped(tenant, facility)
    )
    assert res.status_code == 409

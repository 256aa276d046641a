import json

import pytest
from django.contrib.auth.models import User
from django.test import RequestFactory

from asc_core.common.middleware import TenantFacilityScopeMiddleware
from asc_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_middleware_missing_scope_returns_error_envelope():
    rf = RequestFactory()
    req = rf.get("/api/v1/cases/")

    # A real User instance is authenticated; no need (and not allowed) to set is_authenticated.
    req.user = User.objects.create_user(username="u1", password="pass123")

    mw = TenantFacilityScopeMiddleware(get_response=lambda r: None)
    resp = mw.process_request(req)

    assert resp is not None
    assert resp.status_code == 400

    body = json.loads(resp.content.decode("utf-8"))
    assert "error" in body
    assert body["error"]["code"] == "validation_error"
    assert "Missing scope headers" in body["error"]["message"]
    assert "request_id" in body["error"]


def test_domain_not_found_uses_envelope(api_client, tenant, facility):
    res = api_client.get(
        "/api/v1/cases/00000000-0000-0000-0000-000000000000/",
        **scoped(tenant, facility),
    )
    assert res.status_code == 404
    body = res.json()
    assert body["error"]["code"] == "not_found"
    assert body["error"]["request_id"]


def test_malformed_path_id_is_not_found(api_client, tenant, facility):
    # A malformed id cannot name a row
    res = api_client.get("/api/v1/cases/not-a-uuid/", **scoped(tenant, facility))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


def test_invalid_state_maps_to_409(api_client, tenant, facility, scheduled_case):
    res = api_client.post(
        f"/api/v1/cases/{scheduled_case.id}/approve/",
        {"scheduled_date": str(scheduled_case.scheduled_date)},
        format="json",
        **scoped(tenant, facility),
    )
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "invalid_state"

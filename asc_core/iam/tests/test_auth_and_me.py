# asc_core/iam/tests/test_auth_and_me.py
import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from asc_core.iam.capabilities import Capability
from asc_core.iam.models import FacilityMembership
from asc_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_me_requires_auth():
    """
    A fresh APIClient guarantees an unauthenticated request.
    """
    c = APIClient()
    res = c.get("/api/v1/me/")
    assert res.status_code in (401, 403)


def test_login_sets_cookies(user, settings):
    user.set_password("Pass@12345")
    user.save(update_fields=["password"])

    username_field = user.USERNAME_FIELD
    payload = {username_field: getattr(user, username_field), "password": "Pass@12345"}

    res = APIClient().post("/api/v1/auth/login/", payload, format="json")
    assert res.status_code == 200

    access_cookie = settings.SIMPLE_JWT.get("AUTH_COOKIE", "asc_access")
    refresh_cookie = settings.SIMPLE_JWT.get("AUTH_COOKIE_REFRESH", "asc_refresh")

    assert access_cookie in res.cookies
    assert refresh_cookie in res.cookies


def test_me_returns_memberships(api_client, user, facility):
    res = api_client.get("/api/v1/me/")
    assert res.status_code == 200

    body = res.json()
    assert body["user"]["id"] == user.id
    assert [m["facility_id"] for m in body["memberships"]] == [str(facility.id)]
    assert body["active_scope"] is None
    assert body["capabilities"] == []


def test_me_with_scope_lists_capabilities(client_for, make_user, tenant, facility):
    tech = make_user("tech", "INVENTORY_TECH")
    res = client_for(tech).get("/api/v1/me/", **scoped(tenant, facility))
    assert res.status_code == 200

    caps = res.json()["capabilities"]
    assert Capability.VERIFY_SCAN in caps
    assert Capability.CATALOG_MANAGE not in caps


def test_scope_headers_block_non_member(user, other_tenant, other_facility):
    """
    force_authenticate would bypass the authentication class; a real JWT makes
    CookieOrHeaderJWTAuthentication run and enforce scope.
    """
    FacilityMembership.objects.filter(user_profile__user=user, facility=other_facility).delete()

    client = APIClient()
    access = str(RefreshToken.for_user(user).access_token)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

    res = client.get("/api/v1/me/", **scoped(other_tenant, other_facility))
    assert res.status_code == 403

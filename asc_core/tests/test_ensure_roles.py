import pytest
from django.core.management import CommandError, call_command

from asc_core.iam.capabilities import Role as RoleCode
from asc_core.iam.models import Role

pytestmark = pytest.mark.django_db


def test_ensure_roles_is_idempotent(tenant, other_tenant):
    call_command("ensure_roles")
    call_command("ensure_roles")

    assert Role.objects.filter(tenant=tenant).count() == len(RoleCode.ALL)
    assert Role.objects.filter(tenant=other_tenant).count() == len(RoleCode.ALL)
    assert Role.objects.get(tenant=tenant, code="INVENTORY_TECH").name == "Inventory Tech"


def test_ensure_roles_for_one_tenant(tenant, other_tenant):
    call_command("ensure_roles", tenant=tenant.code)
    assert Role.objects.filter(tenant=tenant).exists()
    assert not Role.objects.filter(tenant=other_tenant).exists()

    with pytest.raises(CommandError):
        call_command("ensure_roles", tenant="missing")

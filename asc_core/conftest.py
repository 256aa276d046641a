# asc_core/conftest.py
import uuid
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from asc_core.common import events
from asc_core.facilities.models import Facility
from asc_core.iam.capabilities import Role, resolve_capabilities
from asc_core.tenants.models import Tenant


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(code="test-tenant", name="Test Tenant")


@pytest.fixture
def facility(db, tenant):
    return Facility.objects.create(tenant=tenant, code="main", name="Main ASC")


@pytest.fixture
def other_tenant(db):
    return Tenant.objects.create(code="other-tenant", name="Other Tenant")


@pytest.fixture
def other_facility(db, other_tenant):
    return Facility.objects.create(tenant=other_tenant, code="other", name="Other ASC")


@pytest.fixture
def tenant_id(tenant):
    return tenant.id


@pytest.fixture
def facility_id(facility):
    return facility.id


@pytest.fixture
def add_member(db):
    """
    add_member(user, tenant, facility, *role_codes) -> user
    Membership graph: auth_user -> UserProfile -> FacilityMembership(role)
    """
    from asc_core.iam.models import FacilityMembership, Role as RoleModel, UserProfile

    def _add(user, tenant, facility, *role_codes):
        profile, _ = UserProfile.objects.get_or_create(user=user, defaults={"tenant": tenant, "is_active": True})
        for code in role_codes:
            role, _ = RoleModel.objects.get_or_create(
                tenant=tenant,
                code=code,
                defaults={"name": code.title(), "is_active": True},
            )
            FacilityMembership.objects.get_or_create(
                tenant=tenant,
                facility=facility,
                user_profile=profile,
                role=role,
                defaults={"is_active": True},
            )
        return user

    return _add


@pytest.fixture
def make_user(db, add_member, tenant, facility):
    User = get_user_model()

    def _make(username, *role_codes):
        user = User.objects.create_user(username=username, password="testpass", is_active=True)
        return add_member(user, tenant, facility, *role_codes)

    return _make


@pytest.fixture
def user(make_user):
    return make_user("testuser", Role.ADMIN)


@pytest.fixture
def surgeon(make_user):
    return make_user("dr-surgeon", Role.SURGEON)


@pytest.fixture
def client_for():
    def _client(u):
        c = APIClient()
        c.force_authenticate(user=u)
        return c

    return _client


@pytest.fixture
def api_client(user, client_for):
    return client_for(user)


@pytest.fixture
def admin_caps():
    return resolve_capabilities([Role.ADMIN])


@pytest.fixture
def catalog_items(tenant, facility, user):
    from asc_core.catalog.services import CatalogService

    return [
        CatalogService.create_item(
            tenant_id=tenant.id,
            facility_id=facility.id,
            actor_user_id=user.id,
            name=name,
            category="INSTRUMENT",
        )
        for name in ("Kerrison Rongeur", "Penfield Dissector", "Bipolar Forceps")
    ]


@pytest.fixture
def preference_card(tenant, facility, user, surgeon, catalog_items):
    from asc_core.preference_cards.services import PreferenceCardService

    return PreferenceCardService.create_card(
        tenant_id=tenant.id,
        facility_id=facility.id,
        actor_user_id=user.id,
        surgeon_id=surgeon.id,
        procedure_name="Lumbar Laminectomy",
        items=[{"catalog_item_id": str(c.id), "quantity": 1} for c in catalog_items],
    )


@pytest.fixture
def make_case(tenant, facility, user, surgeon, admin_caps):
    """
    make_case(**command_fields) -> SurgicalCase created through CaseService.
    """
    from asc_core.cases.commands import CreateCaseCommand
    from asc_core.cases.services import CaseService

    def _make(**fields):
        fields.setdefault("surgeon_id", surgeon.id)
        fields.setdefault("procedure_name", "Lumbar Laminectomy")
        fields.setdefault("requested_date", timezone.localdate() + timedelta(days=2))
        return CaseService.create(
            tenant_id=tenant.id,
            facility_id=facility.id,
            actor_user_id=user.id,
            command=CreateCaseCommand(**fields),
            capabilities=admin_caps,
        )

    return _make


@pytest.fixture
def scheduled_case(make_case):
    return make_case(
        schedule_directly=True,
        scheduled_date=timezone.localdate() + timedelta(days=1),
    )


@pytest.fixture
def stock(tenant, facility, user):
    """
    stock(catalog_item, count=1, **overrides) -> list[InventoryItem], located and sterile.
    """
    from asc_core.inventory.services import InventoryLedger

    location_id = uuid.uuid4()

    def _stock(catalog_item, count=1, **overrides):
        kwargs = {
            "location_id": location_id,
            "sterility_status": "STERILE",
            "sterility_expires_at": timezone.now() + timedelta(days=30),
        }
        kwargs.update(overrides)
        return [
            InventoryLedger.create_item(
                tenant_id=tenant.id,
                facility_id=facility.id,
                catalog_item_id=catalog_item.id,
                performed_by_id=user.id,
                serial_number=f"{catalog_item.name[:3].upper()}-{i}",
                **kwargs,
            )
            for i in range(count)
        ]

    return _stock


@pytest.fixture
def captured_events():
    """
    Records published domain events by name for the duration of a test.
    """
    seen = {}
    handlers = []

    def _capture(name):
        def _handler(payload):
            seen.setdefault(name, []).append(payload)

        events.subscribe(name)(_handler)
        handlers.append((name, _handler))

    for name in ("case.changed", "inventory.event_recorded", "checklist.changed", "attestation.changed"):
        _capture(name)

    yield seen

    for name, handler in handlers:
        events.unsubscribe(name, handler)

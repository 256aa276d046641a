# asc_core/cases/tests/test_case_lifecycle.py
import random
from datetime import timedelta

import pytest
from django.utils import timezone

from asc_core.audit.models import AuditEvent
from asc_core.cases.case_numbers import validate_case_number
from asc_core.cases.commands import (
    ActivateCaseCommand,
    ApproveCaseCommand,
    CancelCaseCommand,
    CreateCaseCommand,
    RejectCaseCommand,
)
from asc_core.cases.models import CaseRequirement, CaseStatus, CaseStatusEvent, SurgicalCase
from asc_core.cases.services import CaseService
from asc_core.common.exceptions import DomainError, DomainValidationError, Forbidden, InvalidState, NotFound
from asc_core.iam.capabilities import Role, resolve_capabilities

pytestmark = pytest.mark.django_db


def _scope(tenant, facility, user):
    return {"tenant_id": tenant.id, "facility_id": facility.id, "actor_user_id": user.id}


def _statuses(case):
    return list(
        CaseStatusEvent.objects.filter(surgical_case=case).order_by("created_at", "id").values_list("from_status", "to_status")
    )


def test_create_requested_case(make_case, captured_events):
    case = make_case()

    assert case.status == CaseStatus.REQUESTED
    assert case.is_active is False
    assert case.is_cancelled is False
    assert validate_case_number(case.case_number)
    assert _statuses(case) == [(None, CaseStatus.REQUESTED)]
    assert AuditEvent.objects.filter(entity_id=case.id, event_code="case.created").count() == 1
    assert [e["action"] for e in captured_events["case.changed"]] == ["created"]


def test_create_binds_preference_card_requirements(make_case, preference_card, catalog_items):
    case = make_case(preference_card_id=preference_card.id)

    rows = CaseRequirement.objects.filter(surgical_case=case)
    assert {r.catalog_item_id for r in rows} == {c.id for c in catalog_items}
    assert all(not r.is_override for r in rows)
    assert case.preference_card_version_id is not None


def test_schedule_directly_requires_capability(tenant, facility, user, surgeon):
    command = CreateCaseCommand(
        surgeon_id=surgeon.id,
        procedure_name="Carpal Tunnel Release",
        scheduled_date=timezone.localdate() + timedelta(days=3),
        schedule_directly=True,
    )
    with pytest.raises(Forbidden):
        CaseService.create(
            **_scope(tenant, facility, user),
            command=command,
            capabilities=resolve_capabilities([Role.SURGEON]),
        )
    assert not SurgicalCase.objects.exists()


def test_schedule_directly_requires_a_date(make_case):
    with pytest.raises(DomainValidationError):
        make_case(schedule_directly=True)


def test_create_rejects_surgeon_outside_facility(make_case, django_user_model):
    stranger = django_user_model.objects.create_user(username="stranger", password="x")
    with pytest.raises(DomainValidationError):
        make_case(surgeon_id=stranger.id)


def test_create_rejects_blank_procedure_and_bad_duration(make_case):
    with pytest.raises(DomainValidationError):
        make_case(procedure_name="   ")
    with pytest.raises(DomainValidationError):
        make_case(estimated_duration_minutes=5)
    with pytest.raises(DomainValidationError):
        make_case(estimated_duration_minutes=721)


def test_approve_schedules_once(tenant, facility, user, make_case):
    case = make_case()
    day = timezone.localdate() + timedelta(days=5)

    approved = CaseService.approve(
        **_scope(tenant, facility, user),
        case_id=case.id,
        command=ApproveCaseCommand(scheduled_date=day, estimated_duration_minutes=90),
    )
    assert approved.status == CaseStatus.SCHEDULED
    assert approved.scheduled_date == day
    assert approved.approved_by_id == user.id

    with pytest.raises(InvalidState):
        CaseService.approve(
            **_scope(tenant, facility, user),
            case_id=case.id,
            command=ApproveCaseCommand(scheduled_date=day),
        )
    assert _statuses(case) == [(None, CaseStatus.REQUESTED), (CaseStatus.REQUESTED, CaseStatus.SCHEDULED)]


def test_reject_requires_reason_and_closes_case(tenant, facility, user, make_case):
    case = make_case()

    with pytest.raises(DomainValidationError):
        CaseService.reject(**_scope(tenant, facility, user), case_id=case.id, command=RejectCaseCommand(reason="  "))

    rejected = CaseService.reject(
        **_scope(tenant, facility, user), case_id=case.id, command=RejectCaseCommand(reason="Surgeon unavailable")
    )
    assert rejected.status == CaseStatus.REJECTED
    assert rejected.rejection_reason == "Surgeon unavailable"
    assert rejected.is_active is False

    with pytest.raises(InvalidState):
        CaseService.cancel(**_scope(tenant, facility, user), case_id=case.id)
    with pytest.raises(InvalidState):
        CaseService.activate(**_scope(tenant, facility, user), case_id=case.id)


def test_activate_requested_case_schedules_it(tenant, facility, user, make_case):
    case = make_case()

    with pytest.raises(DomainValidationError):
        CaseService.activate(**_scope(tenant, facility, user), case_id=case.id)

    day = timezone.localdate() + timedelta(days=1)
    active = CaseService.activate(
        **_scope(tenant, facility, user), case_id=case.id, command=ActivateCaseCommand(scheduled_date=day)
    )
    assert active.is_active is True
    assert active.status == CaseStatus.SCHEDULED
    assert active.activated_by_id == user.id
    assert _statuses(case)[-1] == (CaseStatus.REQUESTED, CaseStatus.SCHEDULED)

    with pytest.raises(InvalidState):
        CaseService.activate(**_scope(tenant, facility, user), case_id=case.id)

    inactive = CaseService.deactivate(**_scope(tenant, facility, user), case_id=case.id)
    assert inactive.is_active is False
    assert inactive.activated_at is None
    with pytest.raises(InvalidState):
        CaseService.deactivate(**_scope(tenant, facility, user), case_id=case.id)


def test_cancel_appends_reason_and_is_not_repeatable(tenant, facility, user, make_case):
    case = make_case(notes="Latex allergy")

    cancelled = CaseService.cancel(
        **_scope(tenant, facility, user), case_id=case.id, command=CancelCaseCommand(reason="Patient ill")
    )
    assert cancelled.status == CaseStatus.CANCELLED
    assert cancelled.is_cancelled is True
    assert cancelled.is_active is False
    assert cancelled.notes == "Latex allergy\nCancelled: Patient ill"

    with pytest.raises(InvalidState):
        CaseService.cancel(**_scope(tenant, facility, user), case_id=case.id)
    assert CaseStatusEvent.objects.filter(surgical_case=case, to_status=CaseStatus.CANCELLED).count() == 1
    with pytest.raises(InvalidState):
        CaseService.activate(**_scope(tenant, facility, user), case_id=case.id)


def test_commands_are_scoped_to_facility(other_tenant, other_facility, user, make_case):
    case = make_case()
    with pytest.raises(NotFound):
        CaseService.cancel(
            tenant_id=other_tenant.id, facility_id=other_facility.id, actor_user_id=user.id, case_id=case.id
        )


def test_random_command_sequences_never_leave_active_and_cancelled(tenant, facility, user, make_case):
    scope = _scope(tenant, facility, user)
    day = timezone.localdate() + timedelta(days=1)
    commands = [
        lambda cid: CaseService.approve(**scope, case_id=cid, command=ApproveCaseCommand(scheduled_date=day)),
        lambda cid: CaseService.reject(**scope, case_id=cid, command=RejectCaseCommand(reason="No slot")),
        lambda cid: CaseService.activate(**scope, case_id=cid, command=ActivateCaseCommand(scheduled_date=day)),
        lambda cid: CaseService.deactivate(**scope, case_id=cid),
        lambda cid: CaseService.cancel(**scope, case_id=cid),
    ]
    rng = random.Random(20240611)

    for _ in range(15):
        case = make_case()
        for _ in range(6):
            try:
                rng.choice(commands)(case.id)
            except DomainError:
                pass
            case.refresh_from_db()
            assert not (case.is_active and case.is_cancelled)
            assert not (case.is_cancelled and case.rejected_at is not None)
            if case.is_active:
                assert case.scheduled_date is not None

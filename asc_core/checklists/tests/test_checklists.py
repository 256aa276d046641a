# asc_core/checklists/tests/test_checklists.py
import pytest

from asc_core.cases.commands import UpdateCaseCommand
from asc_core.cases.services import CaseService
from asc_core.checklists.models import ChecklistKind, ChecklistStatus
from asc_core.checklists.services import ChecklistService
from asc_core.common.exceptions import DomainValidationError, InvalidState
from asc_core.iam.capabilities import Role
from asc_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


@pytest.fixture
def ctx(tenant, facility, user):
    return {"tenant_id": tenant.id, "facility_id": facility.id, "actor_user_id": user.id}


@pytest.fixture
def active_case(ctx, scheduled_case):
    return CaseService.activate(**ctx, case_id=scheduled_case.id)


def test_statuses_default_to_not_started(tenant, facility, scheduled_case):
    assert ChecklistService.statuses(tenant_id=tenant.id, facility_id=facility.id, case_id=scheduled_case.id) == {
        ChecklistKind.TIMEOUT: ChecklistStatus.NOT_STARTED,
        ChecklistKind.DEBRIEF: ChecklistStatus.NOT_STARTED,
    }


def test_inactive_case_cannot_run_checklists(ctx, scheduled_case):
    with pytest.raises(InvalidState):
        ChecklistService.start(**ctx, case_id=scheduled_case.id, kind=ChecklistKind.TIMEOUT)


def test_start_is_repeatable_until_completed(ctx, active_case, captured_events):
    first = ChecklistService.start(**ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT)
    again = ChecklistService.start(**ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT)
    assert first.id == again.id
    assert again.status == ChecklistStatus.IN_PROGRESS

    done = ChecklistService.complete(
        **ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT, responses={"patient_identity": "confirmed"}
    )
    assert done.status == ChecklistStatus.COMPLETED
    assert done.responses == {"patient_identity": "confirmed"}
    assert done.started_at <= done.completed_at

    with pytest.raises(InvalidState):
        ChecklistService.start(**ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT)
    with pytest.raises(InvalidState):
        ChecklistService.complete(**ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT)

    assert [e["status"] for e in captured_events["checklist.changed"]] == [
        ChecklistStatus.IN_PROGRESS,
        ChecklistStatus.COMPLETED,
    ]


def test_debrief_waits_for_surgery_and_timeout(ctx, active_case, admin_caps):
    with pytest.raises(InvalidState):
        ChecklistService.start(**ctx, case_id=active_case.id, kind=ChecklistKind.DEBRIEF)

    ChecklistService.complete(**ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT)
    CaseService.update(
        **ctx, case_id=active_case.id, command=UpdateCaseCommand(status="IN_PROGRESS"), capabilities=admin_caps
    )

    debrief = ChecklistService.start(**ctx, case_id=active_case.id, kind=ChecklistKind.DEBRIEF)
    assert debrief.status == ChecklistStatus.IN_PROGRESS


def test_bad_kind_and_responses(ctx, active_case):
    with pytest.raises(DomainValidationError):
        ChecklistService.start(**ctx, case_id=active_case.id, kind="SIGN_OUT")
    with pytest.raises(DomainValidationError):
        ChecklistService.complete(**ctx, case_id=active_case.id, kind=ChecklistKind.TIMEOUT, responses=["yes"])


def test_checklist_api(api_client, client_for, make_user, tenant, facility, active_case):
    base = f"/api/v1/cases/{active_case.id}/checklists"

    res = api_client.post(f"{base}/start/", {"kind": "TIMEOUT"}, format="json", **scoped(tenant, facility))
    assert res.status_code == 200
    assert res.json()["status"] == ChecklistStatus.IN_PROGRESS

    tech = make_user("tech", Role.INVENTORY_TECH)
    res = client_for(tech).post(f"{base}/complete/", {"kind": "TIMEOUT"}, format="json", **scoped(tenant, facility))
    assert res.status_code == 403

    res = api_client.post(
        f"{base}/complete/", {"kind": "TIMEOUT", "responses": {"site": "marked"}}, format="json", **scoped(tenant, facility)
    )
    assert res.status_code == 200

    res = api_client.get(f"{base}/", **scoped(tenant, facility))
    assert res.json()["statuses"]["TIMEOUT"] == ChecklistStatus.COMPLETED
    assert len(res.json()["instances"]) == 1

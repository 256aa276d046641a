# asc_core/cases/constants.py
from asc_core.cases.models import CaseStatus

# No further lifecycle commands apply
TERMINAL_STATUSES = frozenset({CaseStatus.COMPLETED, CaseStatus.REJECTED, CaseStatus.CANCELLED})

# Active or finished surgery: cannot be deactivated or deleted
CLINICAL_LOCKED_STATUSES = frozenset({CaseStatus.IN_PROGRESS, CaseStatus.COMPLETED})

# Status moves reachable through a generic update; the rest have dedicated commands
UPDATE_TRANSITIONS = {
    CaseStatus.SCHEDULED: frozenset({CaseStatus.IN_PROGRESS}),
    CaseStatus.IN_PROGRESS: frozenset({CaseStatus.COMPLETED}),
}

# asc_core/common/exceptions.py
from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Base for refusals raised by services.

    Each subclass carries a stable `code` (what clients branch on) and the HTTP status the
    API layer should answer with. Services never build HTTP responses themselves.
    """
    code = "domain_error"
    http_status = 400
    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFound(DomainError):
    # Absent and out-of-scope rows are reported identically.
    code = "not_found"
    http_status = 404
    default_message = "Not found."


class InvalidState(DomainError):
    code = "invalid_state"
    http_status = 409
    default_message = "Operation is not allowed in the current state."


class DomainValidationError(DomainError):
    code = "validation_error"
    http_status = 400
    default_message = "Invalid input."


class Forbidden(DomainError):
    code = "forbidden"
    http_status = 403
    default_message = "You do not have the capability required for this action."


class TimeoutRequired(DomainError):
    code = "timeout_required"
    http_status = 409
    default_message = "The surgical timeout checklist must be completed before the case can start."


class DebriefRequired(DomainError):
    code = "debrief_required"
    http_status = 409
    default_message = "The debrief checklist must be completed before the case can be completed."

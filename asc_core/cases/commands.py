# asc_core/cases/commands.py
"""
Typed inputs for CaseService operations.

Each command lists exactly the fields its operation may touch. UpdateCaseCommand
uses the UNSET sentinel so "leave unchanged" and "clear to None" stay distinct.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, time
from typing import Any
from uuid import UUID


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 720
MAX_REASON_LENGTH = 500


@dataclass(frozen=True)
class CreateCaseCommand:
    surgeon_id: int
    procedure_name: str
    requested_date: date | None = None
    requested_time: time | None = None
    scheduled_date: date | None = None
    scheduled_time: time | None = None
    room_id: UUID | None = None
    estimated_duration_minutes: int | None = None
    preference_card_id: UUID | None = None
    laterality: str = ""
    notes: str = ""
    # Skip the request/approval step; needs CASE_SCHEDULE
    schedule_directly: bool = False


@dataclass(frozen=True)
class ApproveCaseCommand:
    scheduled_date: date
    scheduled_time: time | None = None
    room_id: UUID | None = None
    estimated_duration_minutes: int | None = None


@dataclass(frozen=True)
class RejectCaseCommand:
    reason: str


@dataclass(frozen=True)
class ActivateCaseCommand:
    scheduled_date: date | None = None
    scheduled_time: time | None = None


@dataclass(frozen=True)
class CancelCaseCommand:
    reason: str = ""


@dataclass(frozen=True)
class UpdateCaseCommand:
    procedure_name: Any = UNSET
    laterality: Any = UNSET
    notes: Any = UNSET
    requested_date: Any = UNSET
    requested_time: Any = UNSET
    scheduled_date: Any = UNSET
    scheduled_time: Any = UNSET
    room_id: Any = UNSET
    estimated_duration_minutes: Any = UNSET
    preference_card_id: Any = UNSET
    status: Any = UNSET

    SCHEDULE_FIELDS = ("scheduled_date", "scheduled_time", "room_id", "estimated_duration_minutes")

    @classmethod
    def from_data(cls, data: dict) -> "UpdateCaseCommand":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}


@dataclass(frozen=True)
class RequirementItem:
    catalog_item_id: UUID
    quantity: int = 1
    notes: str = ""

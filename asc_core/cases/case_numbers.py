# asc_core/cases/case_numbers.py
"""
Human-readable case numbers: ``YY-NNNNN-C``.

YY is the two-digit year, NNNNN a per-facility, per-year sequence and C a Luhn check
digit over the seven preceding digits, so a mistyped number is caught at entry.
"""
from __future__ import annotations

import re
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from asc_core.cases.models import CaseNumberSequence
from asc_core.common.exceptions import InvalidState

CASE_NUMBER_RE = re.compile(r"^(\d{2})-(\d{5})-(\d)$")
MAX_SEQUENCE = 99999


def luhn_check_digit(digits: str) -> int:
    total = 0
    for i, ch in enumerate(reversed(digits)):
        d = int(ch)
        if i % 2 == 0:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return (10 - total % 10) % 10


def format_case_number(year: int, sequence: int) -> str:
    yy = f"{year % 100:02d}"
    seq = f"{sequence:05d}"
    return f"{yy}-{seq}-{luhn_check_digit(yy + seq)}"


def validate_case_number(value: str) -> bool:
    m = CASE_NUMBER_RE.match(value or "")
    if not m:
        return False
    yy, seq, check = m.groups()
    return luhn_check_digit(yy + seq) == int(check)


@transaction.atomic
def allocate_case_number(*, facility_id: UUID, year: int | None = None) -> str:
    """
    Next number for the facility. The sequence row is locked, so concurrent
    allocations in one facility serialize.
    """
    year = year or timezone.localdate().year
    seq, _ = CaseNumberSequence.objects.select_for_update().get_or_create(facility_id=facility_id, year=year)
    if seq.last_value >= MAX_SEQUENCE:
        raise InvalidState("Case number sequence exhausted for this year.")
    seq.last_value += 1
    seq.save(update_fields=["last_value"])
    return format_case_number(year, seq.last_value)

# asc_core/inventory/gs1.py
"""
GS1 barcode reading for scanner lookups.

Handles the parenthesised form "(01)...(17)...(10)...(21)..." and the raw FNC1
form where variable-length fields end at a group separator. Only the AIs the
inventory needs are kept: 01 GTIN, 10 lot, 17 expiry (YYMMDD), 21 serial.
"""
from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date

GS = "\x1d"

SYMBOLOGY_PREFIXES = ("]d2", "]C1")

_PAREN_AI = re.compile(r"\((\d{2,4})\)([^(]*)")


@dataclass
class GS1Read:
    raw_value: str
    is_gs1: bool = False
    gtin: str | None = None
    lot: str | None = None
    expires_on: date | None = None
    serial: str | None = None
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "is_gs1": self.is_gs1,
            "gtin": self.gtin,
            "lot": self.lot,
            "expires_on": self.expires_on.isoformat() if self.expires_on else None,
            "serial": self.serial,
            "errors": list(self.errors),
        }


def parse_gs1_date(yymmdd: str) -> date | None:
    """
    YY 00-49 is 20YY, 50-99 is 19YY. Day 00 means the last day of the month.
    """
    if not re.fullmatch(r"\d{6}", yymmdd or ""):
        return None
    yy, mm, dd = int(yymmdd[:2]), int(yymmdd[2:4]), int(yymmdd[4:])
    if not 1 <= mm <= 12:
        return None
    year = 2000 + yy if yy <= 49 else 1900 + yy
    if dd == 0:
        dd = calendar.monthrange(year, mm)[1]
    try:
        return date(year, mm, dd)
    except ValueError:
        return None


def looks_like_gs1(raw: str) -> bool:
    if not raw:
        return False
    if raw.startswith(SYMBOLOGY_PREFIXES) or GS in raw:
        return True
    if re.match(r"^\(01\)\d{14}", raw):
        return True
    return bool(re.match(r"^01\d{14}", raw)) and len(raw) > 16


def _apply(read: GS1Read, ai: str, value: str) -> None:
    if ai == "01":
        if re.fullmatch(r"\d{14}", value):
            read.gtin = value
        else:
            read.errors.append("AI(01) GTIN must be 14 digits")
    elif ai == "10":
        read.lot = value
    elif ai == "17":
        parsed = parse_gs1_date(value)
        if parsed:
            read.expires_on = parsed
        else:
            read.errors.append("AI(17) invalid date")
    elif ai == "21":
        read.serial = value


def parse_gs1(raw: str) -> GS1Read:
    read = GS1Read(raw_value=raw)
    if not looks_like_gs1(raw):
        return read
    read.is_gs1 = True

    data = raw[3:] if raw.startswith(SYMBOLOGY_PREFIXES) else raw

    if _PAREN_AI.search(data):
        for ai, value in _PAREN_AI.findall(data):
            _apply(read, ai, value)
        return read

    pos = 0
    while pos < len(data):
        rest = data[pos:]
        if rest.startswith(GS):
            pos += 1
        elif rest.startswith("01") and len(rest) >= 16:
            _apply(read, "01", rest[2:16])
            pos += 16
        elif rest.startswith("17") and len(rest) >= 8:
            _apply(read, "17", rest[2:8])
            pos += 8
        elif rest.startswith(("10", "21")):
            end = rest.find(GS, 2)
            value = rest[2:] if end == -1 else rest[2:end]
            _apply(read, rest[:2], value)
            pos += 2 + len(value) + (0 if end == -1 else 1)
        else:
            # Unknown AI: stop
            break
    return read

from __future__ import annotations

from uuid import UUID

from asc_core.common.exceptions import NotFound


def path_uuid(value, *, label: str = "Resource") -> UUID:
    """
    UUID from a URL segment. A malformed id cannot name a row, so it is a 404.
    """
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFound(f"{label} not found.")

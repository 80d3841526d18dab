"""Shared validation utilities"""

from datetime import datetime, timezone
from typing import Optional, Union


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim free text; blank becomes None. Stored raw, escaped by whatever renders it."""
    if value is None:
        return None
    return value.strip() or None


def as_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """
    Normalize an instant to an aware UTC datetime.

    Accepts ISO 8601 strings as returned by the data API. Naive datetimes
    (SQLite drops the offset) are taken to already be UTC.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def missing_fields(**values) -> list[str]:
    """Names of the given fields that are None or blank"""
    return [
        name
        for name, value in values.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]

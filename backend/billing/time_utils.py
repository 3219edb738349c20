from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.utcnow()


def parse_business_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a calendar date as sent by the invoice editors.

    - None / "" -> None
    - "YYYY-MM-DD" -> date
    - full ISO-8601 datetimes are accepted and truncated to their date
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    if len(s) == 10:
        return date.fromisoformat(s)

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s).date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_iso_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()

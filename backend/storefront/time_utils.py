from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC; every timestamp column stores this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_from_now(minutes: float) -> datetime:
    return utcnow() + timedelta(minutes=minutes)


def _is_bare_date(text: str) -> bool:
    return len(text) == 10 and text[4] == "-" and text[7] == "-"


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Read a client timestamp into naive UTC.

    Clients send "2024-05-01", "2024-05-01T08:30", "...Z" or an explicit
    offset. Offsets are folded into UTC. A bare date means midnight, or the
    last instant of that day when `end_of_day` is set (inclusive range ends).

    Raises ValueError on anything else.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if _is_bare_date(text):
        day = date.fromisoformat(text)
        if end_of_day:
            return datetime.combine(day, time.max)
        return datetime.combine(day, time.min)

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Wire form of a stored timestamp: whole seconds with a 'Z' suffix."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"

"""Time source and calendar-day arithmetic.

Day counts are differences of calendar dates in one reference timezone:
both instants are normalized to local midnight before subtracting, so the
hour of day and DST shifts never move a boundary.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..util.time import parse_utc_iso


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to a given instant; tests move it explicitly."""

    def __init__(self, at: datetime) -> None:
        self._at = _as_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = _as_utc(at)

    def advance(self, **delta: float) -> datetime:
        self._at = self._at + timedelta(**delta)
        return self._at


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    tz_name = str(name or "").strip() or "UTC"
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {tz_name}") from e


def local_date(value: datetime, tz: tzinfo) -> date:
    return _as_utc(value).astimezone(tz).date()


def calendar_days_between(earlier: datetime, later: datetime, tz: tzinfo) -> int:
    """Whole calendar days from `earlier` to `later` (negative if reversed)."""
    return (local_date(later, tz) - local_date(earlier, tz)).days


def parse_instant(value: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """Parse a stored timestamp or date-only string.

    A bare `YYYY-MM-DD` means that calendar day in the reference timezone.
    """
    raw = str(value or "").strip()
    if not raw:
        return None
    if len(raw) == 10:
        try:
            d = date.fromisoformat(raw)
        except ValueError:
            return None
        return datetime.combine(d, time.min, tzinfo=tz).astimezone(timezone.utc)
    return parse_utc_iso(raw)

# feasibility/timeutils.py
"""
Time-window helpers shared by the conflict detectors and the FTL calculator.

 - Instants are always handled as timezone-aware datetimes; naive inputs fall back to UTC.
 - Numeric timestamps are epoch milliseconds (the unit the ledger stores duty times in).
 - Rolling windows are calendar-day buckets keyed on date labels, never a continuous
   24h clock: a 7-day window on 2026-03-15 covers 2026-03-09 .. 2026-03-15 inclusive.
"""

from typing import Any, Callable, Iterable, List, Optional, TypeVar
import datetime
import logging

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as du_parser

log = logging.getLogger("feasibility.timeutils")

T = TypeVar("T")


def ensure_dt_with_tz(dt: Optional[datetime.datetime], tz_name: Optional[str] = None) -> Optional[datetime.datetime]:
    """
    Ensure dt is timezone-aware. If dt.tzinfo is None, attach tz_name if provided,
    else attach UTC. Returns a tz-aware datetime or None if dt is None.
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt
    if tz_name:
        try:
            return dt.replace(tzinfo=ZoneInfo(tz_name))
        except (ZoneInfoNotFoundError, ValueError):
            log.debug("Unknown time zone %r, falling back to UTC", tz_name)
    return dt.replace(tzinfo=datetime.timezone.utc)


def parse_iso(value: Optional[str], tz_hint: Optional[str] = None) -> Optional[datetime.datetime]:
    """
    ISO-8601 parsing returning a timezone-aware datetime, or None when the
    string cannot be read. Accepts offsets, 'Z' and bare dates ('2026-03-15').
    """
    if not value:
        return None
    s = str(value).strip()
    try:
        dt = du_parser.isoparse(s)
    except (ValueError, OverflowError):
        return None
    return ensure_dt_with_tz(dt, tz_hint)


def from_epoch_ms(ms: float) -> Optional[datetime.datetime]:
    try:
        return datetime.datetime.fromtimestamp(float(ms) / 1000.0, tz=datetime.timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def to_datetime(value: Any, tz_hint: Optional[str] = None) -> Optional[datetime.datetime]:
    """
    Extract an instant from the representations the stores hand us:
      - datetime objects (naive -> tz_hint or UTC)
      - date objects (midnight)
      - ISO strings
      - epoch milliseconds (int / float)
    Returns None for anything else, so callers can skip the record.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime.datetime):
        return ensure_dt_with_tz(value, tz_hint)
    if isinstance(value, datetime.date):
        return ensure_dt_with_tz(datetime.datetime(value.year, value.month, value.day), tz_hint)
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)
    if isinstance(value, str):
        return parse_iso(value, tz_hint)
    return None


def to_day(value: Any) -> Optional[datetime.date]:
    """Calendar date label of a value ('2026-03-15', a date, or an instant)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        s = value.strip()
        # plain date labels are taken literally, without time zone shifting
        try:
            return datetime.date.fromisoformat(s[:10])
        except ValueError:
            dt = parse_iso(s)
            return dt.date() if dt else None
    dt = to_datetime(value)
    return dt.date() if dt else None


# ---------- Calendar-day windows ----------
def window_start(reference: datetime.date, days: int) -> datetime.date:
    """First calendar day of an N-day window ending on (and including) reference."""
    return reference - datetime.timedelta(days=days - 1)


def in_window(day: Optional[datetime.date], reference: datetime.date, days: int) -> bool:
    if day is None:
        return False
    return window_start(reference, days) <= day <= reference


def select_in_window(
    items: Iterable[T],
    reference: datetime.date,
    days: int,
    key: Callable[[T], Optional[datetime.date]],
) -> List[T]:
    """Entries whose date label falls in [reference - (days - 1), reference]."""
    return [item for item in items if in_window(key(item), reference, days)]


# ---------- Intervals ----------
def minutes_between(dt1: datetime.datetime, dt2: datetime.datetime) -> float:
    return (dt2 - dt1).total_seconds() / 60.0


def gap_minutes(prev_end: datetime.datetime, next_start: datetime.datetime) -> float:
    """Ground time between two intervals; negative when they overlap."""
    return minutes_between(prev_end, next_start)


# ---------- Units ----------
def round_half_up(value: float) -> int:
    """Round like a dashboard would (2.5 -> 3), not banker's rounding."""
    if value >= 0:
        return int(value + 0.5)
    return -int(-value + 0.5)


def minutes_to_hours(minutes: float) -> float:
    return minutes / 60.0


def minutes_to_hhmm(minutes: Optional[float]) -> Optional[str]:
    """
    Convert minutes to HH:MM string.
    - Accepts negative (exceeded) -> prefix '-' then HH:MM part
    - Returns None if input is None
    """
    if minutes is None:
        return None
    m = round_half_up(float(minutes))
    sign = "-" if m < 0 else ""
    m = abs(m)
    return f"{sign}{m // 60:02d}:{m % 60:02d}"


def hours_to_hhmm(hours: Optional[float]) -> Optional[str]:
    if hours is None:
        return None
    return minutes_to_hhmm(float(hours) * 60)

"""Wall-clock arithmetic on minute-resolution times of day.

Times are 24-hour ``"HH:MM"`` strings or ``{hour, minute}`` pairs, local to the
stylist. Nothing here knows about timezones; absolute instants are converted at
the boundary with ``zoneinfo``.
"""

import re
from datetime import UTC, date, datetime
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.services.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")
_DISPLAY = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$")


class HasHourMinute(Protocol):
    hour: int
    minute: int


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def to_minutes(value: str | HasHourMinute) -> int:
    """Minutes since midnight for an ``"HH:MM"`` string or an hour/minute pair."""
    if isinstance(value, str):
        match = _HHMM.match(value.strip())
        if not match:
            raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
        hour, minute = int(match.group(1)), int(match.group(2))
    else:
        hour, minute = value.hour, value.minute
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"Invalid time {format_hhmm(hour, minute)}")
    return hour * 60 + minute


def from_minutes(minutes: int) -> str:
    """``"HH:MM"`` for a minute offset, wrapping past midnight."""
    minutes %= MINUTES_PER_DAY
    return format_hhmm(minutes // 60, minutes % 60)


def add_duration(time: str, duration_minutes: int) -> str:
    if duration_minutes < 0:
        raise ValidationError("Duration cannot be negative")
    return from_minutes(to_minutes(time) + duration_minutes)


def overlaps(a: tuple[int, int], b: tuple[int, int]) -> bool:
    """Half-open ``[start, end)`` overlap: touching intervals do not overlap."""
    start1, end1 = a
    start2, end2 = b
    return start1 < end2 and end1 > start2


def format_display(time: str) -> str:
    """``"14:05"`` -> ``"2:05 PM"``."""
    total = to_minutes(time)
    hour, minute = divmod(total, 60)
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {period}"


def parse(display: str) -> str:
    """``"2:05 PM"`` -> ``"14:05"``. Plain ``"HH:MM"`` input is accepted as is."""
    text = display.strip()
    match = _DISPLAY.match(text)
    if not match:
        return from_minutes(to_minutes(text))
    hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not (1 <= hour <= 12 and 0 <= minute <= 59):
        raise ValidationError(f"Invalid time {display!r}")
    if period == "PM" and hour != 12:
        hour += 12
    elif period == "AM" and hour == 12:
        hour = 0
    return format_hhmm(hour, minute)


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def normalize_weekday(name: str) -> str:
    key = name.strip().lower()
    if key not in WEEKDAYS:
        raise ValidationError(f"Unknown weekday {name!r}")
    return key


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone {tz_name!r}") from e


def to_naive_utc(dt: datetime) -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns. Naive input is taken as UTC."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def localize(dt_utc: datetime, tz_name: str) -> datetime:
    """Stored naive-UTC instant -> aware datetime in ``tz_name``."""
    if dt_utc.tzinfo is None:
        dt_utc = dt_utc.replace(tzinfo=UTC)
    return dt_utc.astimezone(get_zone(tz_name))


def to_wall_clock(dt_utc: datetime, tz_name: str) -> tuple[date, str]:
    """Stylist-local (date, "HH:MM") for an absolute instant."""
    local = localize(dt_utc, tz_name)
    return local.date(), format_hhmm(local.hour, local.minute)


def utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)

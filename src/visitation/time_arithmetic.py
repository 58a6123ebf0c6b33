"""
Pure helpers for 12-hour display times ("09:00 AM") and visit durations.
No I/O and no clock access.
"""

import datetime
import re
from typing import NamedTuple, Optional

from . import config
from .clock import ensure_utc, facility_tz
from .exceptions import FormatError, ValidationError

DISPLAY_TIME_RE = re.compile(r"^(0?[1-9]|1[0-2]):([0-5][0-9])\s*(AM|PM)$", re.IGNORECASE)
TIME_24H_RE = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")
DURATION_RE = re.compile(r"^\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*$")

MINUTES_PER_DAY = 24 * 60


class TimeOfDay(NamedTuple):
    hour: int    # 0..23
    minute: int  # 0..59

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute


class Duration(NamedTuple):
    hours: int
    minutes: int

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    @classmethod
    def from_minutes(cls, total: int) -> "Duration":
        total = max(0, int(total))
        return cls(total // 60, total % 60)


# PUBLIC_INTERFACE
def parse_display_time(value: str) -> TimeOfDay:
    """
    Parse a 12-hour display time.

    Args:
        value (str): e.g. "09:00 AM", "9:00am", "12:30 PM".

    Returns:
        TimeOfDay: 24-hour hour and minute.

    Raises:
        FormatError: value does not match HH:MM AM/PM.
    """
    if not isinstance(value, str):
        raise FormatError(value)
    match = DISPLAY_TIME_RE.match(value.strip())
    if not match:
        raise FormatError(value)

    hour = int(match.group(1))
    minute = int(match.group(2))
    period = match.group(3).upper()

    if period == "PM" and hour != 12:
        hour += 12
    if period == "AM" and hour == 12:
        hour = 0
    return TimeOfDay(hour, minute)


# PUBLIC_INTERFACE
def duration_between(start: TimeOfDay, end: TimeOfDay) -> Duration:
    """
    Duration from `start` to `end`. An `end` earlier than `start` is read as
    the next day (overnight visits); equal times give zero.
    """
    diff = end.minutes - start.minutes
    if diff < 0:
        diff += MINUTES_PER_DAY
    return Duration.from_minutes(diff)


# PUBLIC_INTERFACE
def format_duration(duration: Duration) -> str:
    """'2h 5m' when there are whole hours, otherwise '45m'."""
    if duration.hours > 0:
        return f"{duration.hours}h {duration.minutes}m"
    return f"{duration.minutes}m"


# PUBLIC_INTERFACE
def to_12_hour(value: str) -> str:
    """'14:05' -> '02:05 PM', '00:30' -> '12:30 AM'."""
    match = TIME_24H_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise FormatError(value, expected='HH:MM 24-hour (e.g. "14:05")')
    hour = int(match.group(1))
    minute = int(match.group(2))
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour:02d}:{minute:02d} {period}"


# PUBLIC_INTERFACE
def to_24_hour(value: str) -> str:
    """'2:05 PM' -> '14:05'."""
    tod = parse_display_time(value)
    return f"{tod.hour:02d}:{tod.minute:02d}"


# PUBLIC_INTERFACE
def validate_time_slot(
    start: str,
    end: str,
    min_minutes: Optional[int] = None,
    max_minutes: Optional[int] = None,
) -> Duration:
    """
    Check a staff-entered custom visit slot and return its duration.

    Raises:
        FormatError: either time is malformed.
        ValidationError: zero length, or outside the allowed bounds
            (CUSTOM_TIMER_MIN_MINUTES .. CUSTOM_TIMER_MAX_MINUTES by default).
    """
    min_minutes = config.CUSTOM_TIMER_MIN_MINUTES if min_minutes is None else min_minutes
    max_minutes = config.CUSTOM_TIMER_MAX_MINUTES if max_minutes is None else max_minutes

    duration = duration_between(parse_display_time(start), parse_display_time(end))
    total = duration.total_minutes

    if total <= 0:
        raise ValidationError(
            "End time must be after start time", field="end_time",
            start_time=start, end_time=end,
        )
    if total < min_minutes:
        raise ValidationError(
            f"Minimum visit duration is {min_minutes} minutes", field="end_time",
            duration_minutes=total, min_minutes=min_minutes,
        )
    if total > max_minutes:
        raise ValidationError(
            f"Maximum visit duration is {format_duration(Duration.from_minutes(max_minutes))}",
            field="end_time", duration_minutes=total, max_minutes=max_minutes,
        )
    return duration


def format_clock_time(instant: datetime.datetime, tz=None) -> str:
    """Wall-clock display string for an instant, e.g. '09:05 AM'."""
    tz = tz or facility_tz()
    return ensure_utc(instant).astimezone(tz).strftime("%I:%M %p")


def at_time_of_day(day: datetime.date, tod: TimeOfDay, tz=None) -> datetime.datetime:
    """The UTC instant at which `tod` occurs on `day` in facility time."""
    tz = tz or facility_tz()
    local = datetime.datetime.combine(day, datetime.time(tod.hour, tod.minute), tzinfo=tz)
    return local.astimezone(datetime.timezone.utc)


def parse_duration_string(value: Optional[str]) -> Optional[int]:
    """'2h 30m' -> 150, '45m' -> 45; None for 'N/A' or anything unparseable."""
    if not value:
        return None
    match = DURATION_RE.match(value)
    if not match or (match.group(1) is None and match.group(2) is None):
        return None
    return int(match.group(1) or 0) * 60 + int(match.group(2) or 0)

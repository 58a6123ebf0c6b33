"""
Ban end-date and expiry calculations.

Works on anything carrying `ban_duration`, `ban_start_date` and
`ban_end_date` attributes: a Person row or a BanHistory row. These functions
never raise; missing or unknown data reads as "not expired".
"""

import datetime
import enum
from typing import Optional

from dateutil.relativedelta import relativedelta

from .clock import ensure_utc


class BanDuration(str, enum.Enum):
    ONE_WEEK = "1_week"
    TWO_WEEKS = "2_weeks"
    ONE_MONTH = "1_month"
    THREE_MONTHS = "3_months"
    SIX_MONTHS = "6_months"
    ONE_YEAR = "1_year"
    PERMANENT = "permanent"
    CUSTOM = "custom"


BAN_DURATION_LABELS = {
    BanDuration.ONE_WEEK.value: "1 Week",
    BanDuration.TWO_WEEKS.value: "2 Weeks",
    BanDuration.ONE_MONTH.value: "1 Month",
    BanDuration.THREE_MONTHS.value: "3 Months",
    BanDuration.SIX_MONTHS.value: "6 Months",
    BanDuration.ONE_YEAR.value: "1 Year",
    BanDuration.PERMANENT.value: "Permanent",
    BanDuration.CUSTOM.value: "Custom Duration",
}

# Month and year offsets are calendar arithmetic, not fixed day counts
BAN_OFFSETS = {
    BanDuration.ONE_WEEK.value: relativedelta(days=7),
    BanDuration.TWO_WEEKS.value: relativedelta(days=14),
    BanDuration.ONE_MONTH.value: relativedelta(months=1),
    BanDuration.THREE_MONTHS.value: relativedelta(months=3),
    BanDuration.SIX_MONTHS.value: relativedelta(months=6),
    BanDuration.ONE_YEAR.value: relativedelta(years=1),
}


def _kind(record) -> Optional[str]:
    kind = getattr(record, "ban_duration", None)
    if isinstance(kind, BanDuration):
        return kind.value
    return kind


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


# PUBLIC_INTERFACE
def compute_end_date(record) -> Optional[datetime.datetime]:
    """
    Instant at which the ban ends.

    Returns:
        datetime | None: None for permanent bans, and for records whose end
        cannot be determined (no start date, unknown kind, custom without end).
    """
    kind = _kind(record)
    if kind == BanDuration.PERMANENT.value:
        return None

    if kind == BanDuration.CUSTOM.value:
        end = getattr(record, "ban_end_date", None)
        return ensure_utc(end) if end else None

    start = getattr(record, "ban_start_date", None)
    offset = BAN_OFFSETS.get(kind)
    if start is None or offset is None:
        return None
    return ensure_utc(start) + offset


# PUBLIC_INTERFACE
def is_expired(record, now: datetime.datetime) -> bool:
    """True once `now` has reached the computed end of a temporary ban."""
    end = compute_end_date(record)
    if end is None:
        return False
    return ensure_utc(now) >= end


# PUBLIC_INTERFACE
def duration_remaining(record, now: datetime.datetime) -> str:
    """
    Human readable time left, for display only.
    e.g. "3 days 4 hours", "2 hours 5 minutes", "12 minutes", "Expired", "Permanent".
    """
    end = compute_end_date(record)
    if end is None:
        return "Permanent"

    left = end - ensure_utc(now)
    if left <= datetime.timedelta(0):
        return "Expired"

    days = left.days
    hours, rest = divmod(left.seconds, 3600)
    minutes = rest // 60

    if days > 0:
        text = _plural(days, "day")
        if hours > 0:
            text += " " + _plural(hours, "hour")
    elif hours > 0:
        text = _plural(hours, "hour")
        if minutes > 0:
            text += " " + _plural(minutes, "minute")
    else:
        text = _plural(minutes, "minute")
    return text


def time_remaining_compact(record, now: datetime.datetime) -> str:
    """'3d 4h 5m' style countdown used by ban listings."""
    end = compute_end_date(record)
    if end is None:
        return "Permanent"
    left = end - ensure_utc(now)
    if left <= datetime.timedelta(0):
        return "Expired"
    hours, rest = divmod(left.seconds, 3600)
    return f"{left.days}d {hours}h {rest // 60}m"


def duration_label(kind: Optional[str]) -> Optional[str]:
    if isinstance(kind, BanDuration):
        kind = kind.value
    return BAN_DURATION_LABELS.get(kind, kind)


def describe_span(start: datetime.datetime, end: Optional[datetime.datetime]) -> str:
    """Length of a ban as text, e.g. '1 month', '2 weeks', '1 year 6 months'."""
    if end is None:
        return "Permanent"
    delta = relativedelta(ensure_utc(end), ensure_utc(start))
    parts = []
    if delta.years:
        parts.append(_plural(delta.years, "year"))
    if delta.months:
        parts.append(_plural(delta.months, "month"))
    if delta.days:
        if delta.days % 7 == 0 and not parts:
            parts.append(_plural(delta.days // 7, "week"))
        else:
            parts.append(_plural(delta.days, "day"))
    if not parts:
        parts.append(_plural(delta.hours, "hour"))
    return " ".join(parts)

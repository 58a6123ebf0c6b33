"""
Clock abstraction. Every time-dependent engine function takes `now`
explicitly; only the HTTP layer asks a Clock for it.
"""

import datetime
from zoneinfo import ZoneInfo

from . import config


class Clock:
    """Source of the current instant (timezone-aware, UTC)."""

    def now(self) -> datetime.datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, instant: datetime.datetime):
        self.instant = ensure_utc(instant)

    def now(self) -> datetime.datetime:
        return self.instant

    def advance(self, **delta) -> datetime.datetime:
        self.instant = self.instant + datetime.timedelta(**delta)
        return self.instant


_system_clock = SystemClock()


# PUBLIC_INTERFACE
def get_clock() -> Clock:
    """FastAPI dependency returning the process clock (overridden in tests)."""
    return _system_clock


# PUBLIC_INTERFACE
def facility_tz() -> ZoneInfo:
    """Timezone used for display times and calendar visit dates."""
    return ZoneInfo(config.FACILITY_TIMEZONE)


def ensure_utc(instant: datetime.datetime) -> datetime.datetime:
    """Naive datetimes are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=datetime.timezone.utc)
    return instant.astimezone(datetime.timezone.utc)


def local_date(instant: datetime.datetime) -> datetime.date:
    """Calendar date of `instant` in facility time."""
    return ensure_utc(instant).astimezone(facility_tz()).date()

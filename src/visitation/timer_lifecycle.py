"""
Visit timer lifecycle: NONE -> STAGED (optional) -> ACTIVE -> COMPLETED | EXPIRED.

start_timer() turns a check-in into an in-progress VisitLog whose window is
either the staged custom slot or the standard window; stop_timer() closes
it at check-out. A log whose timer has run out is reported as expired on
every read; expire_overdue() persists that status when it is run.
"""

import datetime
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from . import config
from .clock import ensure_utc, local_date
from .custom_timer import CustomTimerRecord, CustomTimerStaging
from .exceptions import ConflictError, PersonBannedError, VisitLogNotFoundError
from .ledgers import is_effectively_banned
from .models import Person, VisitLog, VisitStatus
from .registry import get_person
from .time_arithmetic import (
    Duration,
    at_time_of_day,
    duration_between,
    format_clock_time,
    format_duration,
    parse_display_time,
)
from .visit_sessions import VisitSessionStore, is_open

logger = logging.getLogger(__name__)


class Urgency(str, enum.Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TimerWindow:
    timer_start: datetime.datetime
    timer_end: datetime.datetime
    is_custom: bool
    slot: Optional[CustomTimerRecord] = None

    @property
    def duration_minutes(self) -> int:
        return int((self.timer_end - self.timer_start).total_seconds() // 60)


@dataclass(frozen=True)
class TimerSnapshot:
    """An in-progress log as seen at `now`."""
    log: VisitLog
    remaining_minutes: int
    urgency: Urgency

    @property
    def is_expired(self) -> bool:
        return self.urgency is Urgency.EXPIRED


# PUBLIC_INTERFACE
def remaining(now: datetime.datetime, timer_end: datetime.datetime) -> int:
    """Whole minutes left on a timer, never negative."""
    seconds = (ensure_utc(timer_end) - ensure_utc(now)).total_seconds()
    return max(0, int(seconds // 60))


# PUBLIC_INTERFACE
def classify(remaining_minutes) -> Urgency:
    """
    Urgency bucket for minutes remaining: warning below 30, critical below 10,
    expired at 0. Missing or unparseable input is NORMAL; never raises.
    """
    try:
        minutes = int(remaining_minutes)
    except (TypeError, ValueError):
        return Urgency.NORMAL
    if minutes <= 0:
        return Urgency.EXPIRED
    if minutes < config.TIMER_CRITICAL_MINUTES:
        return Urgency.CRITICAL
    if minutes < config.TIMER_WARNING_MINUTES:
        return Urgency.WARNING
    return Urgency.NORMAL


def standard_window(check_in: datetime.datetime) -> TimerWindow:
    check_in = ensure_utc(check_in)
    return TimerWindow(
        timer_start=check_in,
        timer_end=check_in + datetime.timedelta(hours=config.STANDARD_VISIT_HOURS),
        is_custom=False,
    )


def resolve_window(check_in: datetime.datetime, slot: Optional[CustomTimerRecord]) -> TimerWindow:
    """
    Timer window for a check-in.

    A staged slot is pinned to the check-in's calendar day in facility time,
    so arriving a few minutes late does not push the end time back. For an
    overnight slot the previous day's occurrence is used when the check-in
    falls inside it. A slot that is already over falls back to the standard
    window.
    """
    check_in = ensure_utc(check_in)
    if slot is None:
        return standard_window(check_in)

    start_tod = parse_display_time(slot.start_time)
    length = datetime.timedelta(minutes=duration_between(start_tod, parse_display_time(slot.end_time)).total_minutes)
    day = local_date(check_in)

    for candidate_day in (day - datetime.timedelta(days=1), day):
        start = at_time_of_day(candidate_day, start_tod)
        end = start + length
        if start <= check_in < end:
            return TimerWindow(start, end, True, slot)

    start = at_time_of_day(day, start_tod)
    if check_in < start:
        # Early arrival: the slot still governs when the visit ends
        return TimerWindow(start, start + length, True, slot)

    logger.info("Staged slot %s - %s already ended, using standard timer", slot.start_time, slot.end_time)
    return standard_window(check_in)


def effective_status(log: VisitLog, now: datetime.datetime) -> str:
    """Stored status, except an in-progress log past its end reads as expired."""
    if log.status == VisitStatus.IN_PROGRESS.value and ensure_utc(now) >= log.timer_end:
        return VisitStatus.EXPIRED.value
    return log.status


def snapshot(log: VisitLog, now: datetime.datetime) -> TimerSnapshot:
    minutes = remaining(now, log.timer_end)
    return TimerSnapshot(log=log, remaining_minutes=minutes, urgency=classify(minutes))


# PUBLIC_INTERFACE
class TimerLifecycle:
    """Starts, stops and expires visit timers."""

    def __init__(self, db: Session):
        self.db = db
        self.sessions = VisitSessionStore(db)
        self.staging = CustomTimerStaging(db)

    def start_timer(
        self,
        person_id: str,
        person_type: str,
        check_in: datetime.datetime,
        inmate_id: Optional[str] = None,
        purpose: Optional[str] = None,
    ) -> VisitLog:
        """
        Check a person in and start their visit timer.

        The person row is locked for the whole transaction, the staged slot
        (if any) is consumed, and the new log is inserted. Any failure rolls
        all of it back, including the slot consumption.

        Raises:
            PersonNotFoundError: unknown person.
            PersonBannedError: the person is effectively banned.
            ConflictError: the person already has a running timer.
        """
        check_in = ensure_utc(check_in)
        person = get_person(self.db, person_id, person_type, for_update=True)

        if is_effectively_banned(person, check_in):
            self.db.rollback()
            logger.warning("Check-in refused, %s %s is banned", person.person_type, person.person_id)
            raise PersonBannedError(person.person_id, person.person_type, person.ban_reason)

        active = self.sessions.find_active(person.person_id, person.person_type)
        if active is not None:
            if check_in < active.timer_end:
                self.db.rollback()
                logger.warning("Check-in refused, %s %s already has an active timer", person.person_type, person.person_id)
                raise ConflictError(
                    f"{person.person_type.capitalize()} {person.person_id} already has an active visit timer",
                    person_id=person.person_id,
                    person_type=person.person_type,
                    visit_log_id=active.id,
                )
            # Stale log from a visit whose timer ran out without a check-out
            self._mark_expired(active)

        window = resolve_window(check_in, self.staging.consume(person.person_id, person.person_type))
        visit_date = local_date(check_in)

        log = VisitLog(
            person_id=person.person_id,
            person_type=person.person_type,
            person_name=person.full_name,
            inmate_id=inmate_id or person.inmate_id,
            purpose=purpose or person.visit_purpose,
            visit_date=visit_date,
            time_in=format_clock_time(check_in),
            timer_start=window.timer_start,
            timer_end=window.timer_end,
            is_timer_active=True,
            is_custom_timer=window.is_custom,
            custom_start_time=window.slot.start_time if window.is_custom else None,
            custom_end_time=window.slot.end_time if window.is_custom else None,
            status=VisitStatus.IN_PROGRESS.value,
            created_at=check_in,
            updated_at=check_in,
        )
        try:
            self.sessions.create(log)
        except ConflictError:
            self.db.rollback()
            raise

        person.has_timed_in = True
        person.has_timed_out = False
        person.last_visit_date = visit_date

        self.db.commit()
        self.db.refresh(log)
        logger.info(
            "Timer started for %s %s: %s until %s (%s, %s)",
            log.person_type, log.person_id, log.time_in,
            format_clock_time(log.timer_end),
            format_duration(Duration.from_minutes(window.duration_minutes)),
            "custom" if log.is_custom_timer else "standard",
        )
        return log

    def stop_timer(self, visit_log_id: int, check_out: datetime.datetime) -> VisitLog:
        """
        Check out: close an open log and record the visit duration.

        An in-progress log becomes completed. A log the expiry sweep already
        marked expired keeps that status but still gets its time-out and
        duration, so the person is timed out either way.

        Raises:
            VisitLogNotFoundError: no such log, or it was already checked out.
        """
        check_out = ensure_utc(check_out)
        log = self.sessions.get(visit_log_id, for_update=True)
        if not is_open(log):
            raise VisitLogNotFoundError(
                visit_log_id, f"No open visit for visit log {visit_log_id} (status: {log.status})"
            )

        log.time_out = format_clock_time(check_out)
        log.visit_duration = format_duration(
            duration_between(parse_display_time(log.time_in), parse_display_time(log.time_out))
        )
        if log.status == VisitStatus.IN_PROGRESS.value:
            log.status = VisitStatus.COMPLETED.value
        log.is_timer_active = False
        log.checked_out_at = check_out
        log.updated_at = check_out

        person = (
            self.db.query(Person)
            .filter(Person.person_id == log.person_id, Person.person_type == log.person_type)
            .one_or_none()
        )
        if person is not None:
            # A later visit may already be running when a swept log is closed
            running = self.sessions.find_active(log.person_id, log.person_type)
            if running is None or running.id == log.id:
                person.has_timed_out = True
            person.last_visit_date = local_date(check_out)
            person.total_visits = (person.total_visits or 0) + 1
            person.last_visit_duration = log.visit_duration

        self.db.commit()
        self.db.refresh(log)
        logger.info(
            "Timer stopped for %s %s: %s - %s (%s)",
            log.person_type, log.person_id, log.time_in, log.time_out, log.visit_duration,
        )
        return log

    def check_out_person(self, person_id: str, person_type: str, check_out: datetime.datetime) -> VisitLog:
        """Check-out by person rather than by log id (the scan-out path)."""
        person = get_person(self.db, person_id, person_type)
        open_log = self.sessions.find_open(person.person_id, person.person_type)
        if open_log is None:
            raise VisitLogNotFoundError(
                person_id,
                f"{person.person_type.capitalize()} {person.person_id} has no active visit",
            )
        return self.stop_timer(open_log.id, check_out)

    def active_timers(self, now: datetime.datetime) -> List[TimerSnapshot]:
        return [snapshot(log, now) for log in self.sessions.list_active_timers(now)]

    def timer_status(self, person_id: str, person_type: str, now: datetime.datetime) -> dict:
        """Running timer (if any) and staged slot (if any) for one person."""
        person = get_person(self.db, person_id, person_type)
        active = self.sessions.find_active(person.person_id, person.person_type)
        staged = self.staging.peek(person.person_id, person.person_type)
        return {
            "person": person,
            "timer": snapshot(active, now) if active is not None else None,
            "status": effective_status(active, now) if active is not None else None,
            "custom_timer": staged,
        }

    def expire_overdue(self, now: datetime.datetime) -> List[VisitLog]:
        """Persist status=expired on in-progress logs whose timer has ended. Idempotent."""
        overdue = self.sessions.list_overdue(ensure_utc(now))
        for log in overdue:
            self._mark_expired(log)
        self.db.commit()
        if overdue:
            logger.info("Timer sweep expired %d visit log(s)", len(overdue))
        return overdue

    def _mark_expired(self, log: VisitLog) -> None:
        log.status = VisitStatus.EXPIRED.value
        log.is_timer_active = False
        log.updated_at = log.timer_end
        self.db.flush()
        logger.info("Visit log %s for %s %s expired at %s", log.id, log.person_type, log.person_id,
                    format_clock_time(log.timer_end))

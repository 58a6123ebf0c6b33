"""
Custom timer staging.

Staff may stage one custom time slot per person before check-in. The slot
lives on the person row, is replaced by any later stage() call, and is read
and cleared exactly once by the check-in that starts the visit timer.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.orm import Session

from .registry import get_person
from .time_arithmetic import (
    Duration,
    duration_between,
    format_duration,
    parse_display_time,
    validate_time_slot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomTimerRecord:
    start_time: str  # "09:00 AM"
    end_time: str    # "11:00 AM"
    duration: str    # "2h 0m"

    @property
    def slot_duration(self) -> Duration:
        return duration_between(parse_display_time(self.start_time), parse_display_time(self.end_time))

    def to_dict(self) -> dict:
        return asdict(self)


def _staged(person) -> Optional[CustomTimerRecord]:
    if not (person.custom_timer_start and person.custom_timer_end):
        return None
    return CustomTimerRecord(
        start_time=person.custom_timer_start,
        end_time=person.custom_timer_end,
        duration=person.custom_timer_duration,
    )


# PUBLIC_INTERFACE
class CustomTimerStaging:
    """Staged-slot store keyed by (person_id, person_type)."""

    def __init__(self, db: Session):
        self.db = db

    def stage(
        self,
        person_id: str,
        person_type: str,
        start_time: str,
        end_time: str,
        duration: Optional[str] = None,
    ) -> CustomTimerRecord:
        """
        Validate and stage a slot, replacing any previously staged one.
        The stored duration is always the one computed from the slot;
        a caller-supplied `duration` that disagrees is ignored.
        """
        slot = validate_time_slot(start_time, end_time)
        record = CustomTimerRecord(
            start_time=start_time.strip().upper(),
            end_time=end_time.strip().upper(),
            duration=format_duration(slot),
        )
        if duration and duration != record.duration:
            logger.debug("Ignoring supplied duration %r, slot is %s", duration, record.duration)

        person = get_person(self.db, person_id, person_type, for_update=True)
        replaced = _staged(person)
        person.custom_timer_start = record.start_time
        person.custom_timer_end = record.end_time
        person.custom_timer_duration = record.duration
        self.db.commit()

        logger.info(
            "Custom timer staged for %s %s: %s - %s (%s)%s",
            person.person_type, person.person_id, record.start_time, record.end_time,
            record.duration, " replacing previous slot" if replaced else "",
        )
        return record

    def consume(self, person_id: str, person_type: str) -> Optional[CustomTimerRecord]:
        """
        Read and clear the staged slot under a row lock.

        Does not commit: the check-in that consumes the slot commits it
        together with the new visit log, or rolls both back.
        """
        person = get_person(self.db, person_id, person_type, for_update=True)
        record = _staged(person)
        if record is not None:
            person.custom_timer_start = None
            person.custom_timer_end = None
            person.custom_timer_duration = None
            self.db.flush()
        return record

    def peek(self, person_id: str, person_type: str) -> Optional[CustomTimerRecord]:
        return _staged(get_person(self.db, person_id, person_type))

    def clear(self, person_id: str, person_type: str) -> bool:
        """Drop a staged slot; returns whether one was staged."""
        person = get_person(self.db, person_id, person_type, for_update=True)
        had_slot = _staged(person) is not None
        person.custom_timer_start = None
        person.custom_timer_end = None
        person.custom_timer_duration = None
        self.db.commit()
        if had_slot:
            logger.info("Custom timer cleared for %s %s", person.person_type, person.person_id)
        return had_slot

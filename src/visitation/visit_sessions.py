"""
Visit log persistence and queries.

The store owns the "one in-progress log per person" rule: create() checks
for an active log and the partial unique index on visit_logs backs the
check when two check-ins race.
"""

import datetime
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .exceptions import ConflictError, ValidationError, VisitLogNotFoundError
from .models import VisitLog, VisitStatus
from .registry import normalize_person_type
from .time_arithmetic import Duration, format_duration, parse_duration_string

logger = logging.getLogger(__name__)

# Columns a caller may patch through update()
UPDATABLE_FIELDS = {
    "inmate_id",
    "purpose",
    "time_out",
    "visit_duration",
    "timer_end",
    "is_timer_active",
    "status",
    "checked_out_at",
}


def active_timer_filter(now: datetime.datetime):
    """The single definition of a live timer: in progress, not checked out, not yet ended."""
    return (
        VisitLog.status == VisitStatus.IN_PROGRESS.value,
        VisitLog.time_out.is_(None),
        VisitLog.timer_end > now,
    )


def is_open(log: VisitLog) -> bool:
    """Not yet checked out: in progress, or expired by the sweep without a time-out."""
    if log.time_out is not None:
        return False
    return log.status in (VisitStatus.IN_PROGRESS.value, VisitStatus.EXPIRED.value)


# PUBLIC_INTERFACE
class VisitSessionStore:
    """CRUD and queries over VisitLog rows."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, log: VisitLog) -> VisitLog:
        """
        Insert a new in-progress log.

        Flushes but does not commit, so the caller can commit the log
        together with related changes.

        Raises:
            ConflictError: the person already has an in-progress log.
        """
        if self.find_active(log.person_id, log.person_type) is not None:
            raise ConflictError(
                f"{log.person_type.capitalize()} {log.person_id} already has an active visit timer",
                person_id=log.person_id,
                person_type=log.person_type,
            )
        self.db.add(log)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Concurrent check-in rejected for %s %s", log.person_type, log.person_id)
            raise ConflictError(
                f"{log.person_type.capitalize()} {log.person_id} already has an active visit timer",
                person_id=log.person_id,
                person_type=log.person_type,
            )
        return log

    def get(self, visit_log_id: int, for_update: bool = False) -> VisitLog:
        query = self.db.query(VisitLog).filter(VisitLog.id == visit_log_id)
        if for_update:
            query = query.with_for_update()
        log = query.one_or_none()
        if log is None:
            raise VisitLogNotFoundError(visit_log_id)
        return log

    def find_active(self, person_id: str, person_type: str) -> Optional[VisitLog]:
        """The person's in-progress log, whether or not its timer has run out."""
        return (
            self.db.query(VisitLog)
            .filter(
                VisitLog.person_id == person_id,
                VisitLog.person_type == person_type,
                VisitLog.status == VisitStatus.IN_PROGRESS.value,
            )
            .one_or_none()
        )

    def find_open(self, person_id: str, person_type: str) -> Optional[VisitLog]:
        """The log a check-out should close: the in-progress one, else the latest swept one."""
        active = self.find_active(person_id, person_type)
        if active is not None:
            return active
        return (
            self.db.query(VisitLog)
            .filter(
                VisitLog.person_id == person_id,
                VisitLog.person_type == person_type,
                VisitLog.status == VisitStatus.EXPIRED.value,
                VisitLog.time_out.is_(None),
            )
            .order_by(VisitLog.timer_end.desc(), VisitLog.id.desc())
            .first()
        )

    def list_active_timers(self, now: datetime.datetime) -> List[VisitLog]:
        """Logs backing the live dashboards, soonest to end first."""
        return (
            self.db.query(VisitLog)
            .filter(*active_timer_filter(now))
            .order_by(VisitLog.timer_end.asc(), VisitLog.id.asc())
            .all()
        )

    def list_overdue(self, now: datetime.datetime) -> List[VisitLog]:
        """In-progress logs whose timer has run out but were never checked out."""
        return (
            self.db.query(VisitLog)
            .filter(
                VisitLog.status == VisitStatus.IN_PROGRESS.value,
                VisitLog.time_out.is_(None),
                VisitLog.timer_end <= now,
            )
            .order_by(VisitLog.timer_end.asc())
            .all()
        )

    def update(self, visit_log_id: int, patch: Dict[str, Any]) -> VisitLog:
        """
        Apply a partial update.

        Raises:
            ValidationError: unknown or read-only field in `patch`.
            ConflictError: the log is completed and therefore immutable, or
                reopening it would give the person a second in-progress log.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )
        log = self.get(visit_log_id, for_update=True)
        if log.status == VisitStatus.COMPLETED.value:
            raise ConflictError(f"Visit log {visit_log_id} is completed and cannot be changed")
        if "status" in patch and patch["status"] not in {s.value for s in VisitStatus}:
            raise ValidationError(f"Invalid visit status '{patch['status']}'", field="status")
        if patch.get("status") == VisitStatus.IN_PROGRESS.value:
            active = self.find_active(log.person_id, log.person_type)
            if active is not None and active.id != log.id:
                raise ConflictError(
                    f"{log.person_type.capitalize()} {log.person_id} already has an active visit timer",
                    visit_log_id=active.id,
                )

        owner = f"{log.person_type.capitalize()} {log.person_id}"
        for key, value in patch.items():
            setattr(log, key, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Update of visit log %s rejected, person already has an active log", visit_log_id)
            raise ConflictError(f"{owner} already has an active visit timer", visit_log_id=visit_log_id)
        self.db.refresh(log)
        return log

    def list_by_person(self, person_id: str, person_type: str, limit: Optional[int] = None) -> List[VisitLog]:
        query = (
            self.db.query(VisitLog)
            .filter(VisitLog.person_id == person_id, VisitLog.person_type == person_type)
            .order_by(VisitLog.visit_date.desc(), VisitLog.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def list_by_date_range(
        self,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> List[VisitLog]:
        return self.list_logs(start_date=start_date, end_date=end_date)

    def list_logs(
        self,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        person_type: Optional[str] = None,
        person_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[VisitLog]:
        """
        Visit logs filtered by calendar visit date (inclusive) and person.
        visit_date is a facility-local calendar date, so no instant math here.
        """
        query = self.db.query(VisitLog)
        if start_date:
            query = query.filter(VisitLog.visit_date >= start_date)
        if end_date:
            query = query.filter(VisitLog.visit_date <= end_date)
        if person_type:
            query = query.filter(VisitLog.person_type == normalize_person_type(person_type))
        if person_id:
            query = query.filter(VisitLog.person_id == person_id)
        if status:
            query = query.filter(VisitLog.status == status)
        return query.order_by(VisitLog.visit_date.desc(), VisitLog.timer_start.desc()).all()

    def visit_stats(self, person_id: str, person_type: str, recent: int = 5) -> Dict[str, Any]:
        """Totals, average completed-visit duration and monthly counts for one person."""
        logs = self.list_by_person(person_id, person_type)
        completed = [log for log in logs if log.status == VisitStatus.COMPLETED.value]

        minutes = [m for m in (parse_duration_string(log.visit_duration) for log in completed) if m is not None]
        average = round(sum(minutes) / len(minutes)) if minutes else 0

        monthly = Counter(log.visit_date.strftime("%Y-%m") for log in logs)
        return {
            "total_visits": len(logs),
            "completed_visits": len(completed),
            "expired_visits": sum(1 for log in logs if log.status == VisitStatus.EXPIRED.value),
            "average_visit_duration": format_duration(Duration.from_minutes(average)) if average else "N/A",
            "last_visit_date": logs[0].visit_date if logs else None,
            "monthly_visits": [
                {"month": month, "count": count}
                for month, count in sorted(monthly.items(), reverse=True)[:12]
            ],
            "recent_visits": logs[:recent],
        }

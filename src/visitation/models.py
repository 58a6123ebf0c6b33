"""
SQLAlchemy ORM models for the visitation engine.
Entities: Person (visitor or guest), VisitLog, BanHistory, ViolationHistory,
and IdCounter for per-type sequential person ids.
"""

import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back timezone-aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=datetime.timezone.utc)


class PersonType(str, enum.Enum):
    VISITOR = "visitor"
    GUEST = "guest"


class VisitStatus(str, enum.Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


class LedgerStatus(str, enum.Enum):
    ACTIVE = "active"
    REMOVED = "removed"
    EXPIRED = "expired"  # written only by the ban hygiene sweep


# PUBLIC_INTERFACE
class Person(Base):
    """
    Person model.
    Visitors and guests share one table, keyed by (person_type, person_id).
    Ban, violation and staged-timer columns are projections maintained by
    the ledgers and the timer staging; they are not edited directly.
    """
    __tablename__ = "persons"

    person_type = Column(String(16), primary_key=True)
    person_id = Column(String(16), primary_key=True)  # "001", "002", ... per type
    full_name = Column(String, nullable=False)
    inmate_id = Column(String, nullable=True)       # visitors: inmate being visited
    visit_purpose = Column(String, nullable=True)   # guests: purpose-only visits

    # Current visit session
    has_timed_in = Column(Boolean, default=False, nullable=False)
    has_timed_out = Column(Boolean, default=False, nullable=False)
    last_visit_date = Column(Date, nullable=True)
    total_visits = Column(Integer, default=0, nullable=False)
    last_visit_duration = Column(String, nullable=True)

    # Staged one-shot custom timer, 12-hour display strings
    custom_timer_start = Column(String(16), nullable=True)
    custom_timer_end = Column(String(16), nullable=True)
    custom_timer_duration = Column(String(16), nullable=True)

    # Ban projection
    is_banned = Column(Boolean, default=False, nullable=False)
    ban_reason = Column(String, nullable=True)
    ban_duration = Column(String(16), nullable=True)
    ban_start_date = Column(UTCDateTime, nullable=True)
    ban_end_date = Column(UTCDateTime, nullable=True)  # custom bans only
    calculated_duration = Column(String, nullable=True)
    ban_notes = Column(Text, nullable=True)

    # Violation projection
    violation_type = Column(String, nullable=True)
    violation_details = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Person({self.person_type} {self.person_id}, name='{self.full_name}')>"


class IdCounter(Base):
    """Per person-type sequence backing zero-padded ids."""
    __tablename__ = "id_counters"

    name = Column(String(32), primary_key=True)
    seq = Column(Integer, default=0, nullable=False)


# PUBLIC_INTERFACE
class VisitLog(Base):
    """
    VisitLog model.
    One row per check-in. At most one row per person may be in progress,
    enforced by a partial unique index.
    """
    __tablename__ = "visit_logs"
    __table_args__ = (
        Index(
            "uq_visit_logs_one_active_per_person",
            "person_id",
            "person_type",
            unique=True,
            postgresql_where=text("status = 'in-progress'"),
            sqlite_where=text("status = 'in-progress'"),
        ),
        Index("ix_visit_logs_visit_date", "visit_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(String(16), nullable=False, index=True)
    person_type = Column(String(16), nullable=False)
    person_name = Column(String, nullable=True)
    inmate_id = Column(String, nullable=True)  # null for guest purpose-only visits
    purpose = Column(String, nullable=True)

    visit_date = Column(Date, nullable=False)         # calendar date, facility time
    time_in = Column(String(16), nullable=False)      # "09:05 AM"
    time_out = Column(String(16), nullable=True)
    visit_duration = Column(String(16), nullable=True)

    timer_start = Column(UTCDateTime, nullable=False)
    timer_end = Column(UTCDateTime, nullable=False)
    is_timer_active = Column(Boolean, default=True, nullable=False)
    is_custom_timer = Column(Boolean, default=False, nullable=False)
    custom_start_time = Column(String(16), nullable=True)
    custom_end_time = Column(String(16), nullable=True)

    status = Column(String(16), default=VisitStatus.IN_PROGRESS.value, nullable=False)
    checked_out_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def total_duration_minutes(self) -> int:
        return int((self.timer_end - self.timer_start).total_seconds() // 60)


# PUBLIC_INTERFACE
class BanHistory(Base):
    """
    BanHistory model.
    Append-only ledger of bans; rows are marked removed/expired, never deleted.
    """
    __tablename__ = "ban_history"

    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(String(16), nullable=False, index=True)
    person_type = Column(String(16), nullable=False)
    person_name = Column(String, nullable=False)
    ban_reason = Column(String, nullable=False)
    ban_duration = Column(String(16), nullable=False)
    ban_start_date = Column(UTCDateTime, nullable=True)
    ban_end_date = Column(UTCDateTime, nullable=True)
    calculated_duration = Column(String, nullable=True)
    ban_notes = Column(Text, nullable=True)
    banned_by = Column(String, nullable=True)
    status = Column(String(16), default=LedgerStatus.ACTIVE.value, nullable=False, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    removed_at = Column(UTCDateTime, nullable=True)
    removed_by = Column(String, nullable=True)
    removal_reason = Column(String, nullable=True)


# PUBLIC_INTERFACE
class ViolationHistory(Base):
    """
    ViolationHistory model.
    Append-only ledger of recorded violations.
    """
    __tablename__ = "violation_history"

    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(String(16), nullable=False, index=True)
    person_type = Column(String(16), nullable=False)
    person_name = Column(String, nullable=False)
    violation_type = Column(String, nullable=False)
    violation_details = Column(Text, nullable=True)
    recorded_by = Column(String, nullable=True)
    status = Column(String(16), default=LedgerStatus.ACTIVE.value, nullable=False, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    removed_at = Column(UTCDateTime, nullable=True)
    removed_by = Column(String, nullable=True)
    removal_reason = Column(String, nullable=True)

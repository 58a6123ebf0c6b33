"""
Ban and violation ledgers.

The history tables are the authoritative record. The ban/violation columns
on Person are a projection that apply_*/remove_* recompute in the same
transaction as the ledger write, so the two cannot drift apart.

Ban expiry is evaluated lazily: is_effectively_banned() is the only
"is this person banned" predicate, and a stale is_banned flag past its end
date simply reads as not banned. expire_lapsed_bans() is optional storage
hygiene and never changes what that predicate returns.
"""

import datetime
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .ban_expiry import (
    BanDuration,
    compute_end_date,
    describe_span,
    duration_label,
    duration_remaining,
    is_expired,
    time_remaining_compact,
)
from .clock import ensure_utc, local_date
from .exceptions import ValidationError
from .models import BanHistory, LedgerStatus, Person, ViolationHistory
from .registry import get_person, normalize_person_type

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "System"
DEFAULT_REMOVAL_REASON = "Administrative removal"
EXPIRY_REMOVAL_REASON = "Ban duration expired automatically"


# PUBLIC_INTERFACE
def is_effectively_banned(person, now: datetime.datetime) -> bool:
    """Banned flag set and the ban has not run out (permanent bans never do)."""
    return bool(person.is_banned) and not is_expired(person, now)


def ban_details(record, now: datetime.datetime) -> Dict[str, Any]:
    """Display fields shared by ban listings, ban status and ban history."""
    expired = is_expired(record, now)
    return {
        "calculated_end_date": compute_end_date(record),
        "time_remaining": time_remaining_compact(record, now),
        "exact_duration": duration_remaining(record, now),
        "is_expired": expired,
        "is_permanent": record.ban_duration == BanDuration.PERMANENT.value,
        "duration_display": duration_label(record.ban_duration),
    }


def _history_query(
    db: Session,
    model,
    person_id: Optional[str] = None,
    person_type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
):
    query = db.query(model)
    if person_id:
        query = query.filter(model.person_id == person_id)
    if person_type:
        query = query.filter(model.person_type == normalize_person_type(person_type))
    if status:
        query = query.filter(model.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(model.person_name.ilike(pattern), model.person_id.ilike(pattern)))
    records = query.order_by(model.created_at.desc(), model.id.desc()).all()

    # Date range is by facility calendar date, not by instant
    if start_date or end_date:
        records = [
            r for r in records
            if (start_date is None or local_date(r.created_at) >= start_date)
            and (end_date is None or local_date(r.created_at) <= end_date)
        ]
    return records


def _monthly_counts(records, limit: int = 12) -> List[Dict[str, Any]]:
    monthly = Counter(local_date(r.created_at).strftime("%Y-%m") for r in records)
    return [{"month": m, "count": c} for m, c in sorted(monthly.items(), reverse=True)[:limit]]


def _clear_ban_projection(person: Person) -> None:
    person.is_banned = False
    person.ban_reason = None
    person.ban_duration = None
    person.ban_start_date = None
    person.ban_end_date = None
    person.calculated_duration = None
    person.ban_notes = None


# PUBLIC_INTERFACE
class BanLedger:
    """Applies, lifts, lists and expires bans."""

    def __init__(self, db: Session):
        self.db = db

    def apply_ban(
        self,
        person_id: str,
        person_type: str,
        reason: str,
        duration: str,
        now: datetime.datetime,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
        notes: Optional[str] = None,
        banned_by: Optional[str] = None,
    ) -> BanHistory:
        """
        Ban a person and append an active history record.

        Banning someone who is already banned is an edit: the person's ban
        fields are overwritten and a new record is appended; earlier active
        records are left as they are.

        Raises:
            ValidationError: missing reason, unknown duration, or a custom
                ban without an end date after its start date.
        """
        if not reason or not reason.strip():
            raise ValidationError("Ban reason is required", field="reason")
        try:
            kind = BanDuration(duration)
        except ValueError:
            raise ValidationError(
                f"Invalid ban duration '{duration}'", field="duration",
                allowed=[d.value for d in BanDuration],
            )

        start = ensure_utc(start_date) if start_date else ensure_utc(now)
        custom_end = None
        if kind is BanDuration.CUSTOM:
            if end_date is None:
                raise ValidationError("Custom duration requires an end date", field="end_date")
            custom_end = ensure_utc(end_date)
            if custom_end <= start:
                raise ValidationError("Ban end date must be after start date", field="end_date")

        person = get_person(self.db, person_id, person_type, for_update=True)

        record = BanHistory(
            person_id=person.person_id,
            person_type=person.person_type,
            person_name=person.full_name,
            ban_reason=reason.strip(),
            ban_duration=kind.value,
            ban_start_date=start,
            ban_end_date=custom_end,
            ban_notes=notes,
            banned_by=banned_by or DEFAULT_ACTOR,
            status=LedgerStatus.ACTIVE.value,
            created_at=ensure_utc(now),
        )
        end = compute_end_date(record)
        record.ban_end_date = end
        record.calculated_duration = describe_span(start, end)
        self.db.add(record)

        person.is_banned = True
        person.ban_reason = record.ban_reason
        person.ban_duration = record.ban_duration
        person.ban_start_date = start
        person.ban_end_date = custom_end
        person.calculated_duration = record.calculated_duration
        person.ban_notes = notes

        self.db.commit()
        self.db.refresh(record)
        logger.info(
            "Ban applied to %s %s: %s (%s) by %s",
            person.person_type, person.person_id, record.ban_reason,
            record.ban_duration, record.banned_by,
        )
        return record

    def remove_ban(
        self,
        person_id: str,
        person_type: str,
        now: datetime.datetime,
        removed_by: Optional[str] = None,
        removal_reason: Optional[str] = None,
    ) -> List[BanHistory]:
        """
        Lift a person's ban; returns the history records marked removed.

        Idempotent: a person who is not banned and has no active record is
        left untouched. A banned person with no active record (data written
        before the ledger existed) gets one removed record for the audit trail.
        """
        person = get_person(self.db, person_id, person_type, for_update=True)
        removed_by = removed_by or DEFAULT_ACTOR
        removal_reason = removal_reason or DEFAULT_REMOVAL_REASON
        now = ensure_utc(now)

        active = (
            self.db.query(BanHistory)
            .filter(
                BanHistory.person_id == person.person_id,
                BanHistory.person_type == person.person_type,
                BanHistory.status == LedgerStatus.ACTIVE.value,
            )
            .order_by(BanHistory.created_at.desc())
            .all()
        )

        if not active and not person.is_banned:
            logger.debug("remove_ban: %s %s is not banned", person.person_type, person.person_id)
            return []

        for record in active:
            record.status = LedgerStatus.REMOVED.value
            record.removed_at = now
            record.removed_by = removed_by
            record.removal_reason = removal_reason

        if not active:
            audit = BanHistory(
                person_id=person.person_id,
                person_type=person.person_type,
                person_name=person.full_name,
                ban_reason=person.ban_reason or "Unknown (Removed)",
                ban_duration=person.ban_duration or BanDuration.PERMANENT.value,
                ban_start_date=person.ban_start_date,
                ban_end_date=person.ban_end_date,
                calculated_duration=person.calculated_duration,
                ban_notes=person.ban_notes,
                banned_by=DEFAULT_ACTOR,
                status=LedgerStatus.REMOVED.value,
                created_at=now,
                removed_at=now,
                removed_by=removed_by,
                removal_reason=removal_reason,
            )
            self.db.add(audit)
            active = [audit]

        _clear_ban_projection(person)
        self.db.commit()
        logger.info(
            "Ban removed from %s %s by %s (%d record(s))",
            person.person_type, person.person_id, removed_by, len(active),
        )
        return active

    def currently_banned(self, now: datetime.datetime) -> List[Person]:
        flagged = self.db.query(Person).filter(Person.is_banned.is_(True)).all()
        return [p for p in flagged if is_effectively_banned(p, now)]

    def ban_status(self, person_id: str, person_type: str, now: datetime.datetime) -> Dict[str, Any]:
        """Whether the person is banned right now, plus the ban's display fields."""
        person = get_person(self.db, person_id, person_type)
        status = {
            "person": person,
            "is_banned": is_effectively_banned(person, now),
            "ban_reason": person.ban_reason,
            "ban_duration": person.ban_duration,
            "ban_start_date": person.ban_start_date,
            "ban_notes": person.ban_notes,
        }
        if person.is_banned:
            status.update(ban_details(person, now))
        return status

    def history(self, **filters) -> List[BanHistory]:
        return _history_query(self.db, BanHistory, **filters)

    def stats(self) -> Dict[str, Any]:
        records = self.db.query(BanHistory).all()
        by_status = Counter(r.status for r in records)
        return {
            "total_bans": len(records),
            "active_bans": by_status.get(LedgerStatus.ACTIVE.value, 0),
            "removed_bans": by_status.get(LedgerStatus.REMOVED.value, 0),
            "expired_bans": by_status.get(LedgerStatus.EXPIRED.value, 0),
            "monthly_bans": _monthly_counts(records),
        }

    def expire_lapsed_bans(self, now: datetime.datetime) -> Dict[str, int]:
        """
        Hygiene sweep: mark lapsed active records expired and clear stale
        is_banned flags. Safe to run any number of times.
        """
        now = ensure_utc(now)
        expired_records = 0
        for record in self.db.query(BanHistory).filter(BanHistory.status == LedgerStatus.ACTIVE.value).all():
            if is_expired(record, now):
                record.status = LedgerStatus.EXPIRED.value
                record.removed_at = now
                record.removed_by = DEFAULT_ACTOR
                record.removal_reason = EXPIRY_REMOVAL_REASON
                expired_records += 1

        cleared = 0
        for person in self.db.query(Person).filter(Person.is_banned.is_(True)).all():
            if is_expired(person, now):
                _clear_ban_projection(person)
                cleared += 1

        self.db.commit()
        if expired_records or cleared:
            logger.info("Ban sweep: %d record(s) expired, %d person flag(s) cleared", expired_records, cleared)
        return {"expired_records": expired_records, "cleared_persons": cleared}


# PUBLIC_INTERFACE
class ViolationLedger:
    """Records, lifts and lists violations."""

    def __init__(self, db: Session):
        self.db = db

    def apply_violation(
        self,
        person_id: str,
        person_type: str,
        violation_type: str,
        now: datetime.datetime,
        violation_details: Optional[str] = None,
        recorded_by: Optional[str] = None,
    ) -> ViolationHistory:
        if not violation_type or not violation_type.strip():
            raise ValidationError("Violation type is required", field="violation_type")

        person = get_person(self.db, person_id, person_type, for_update=True)
        record = ViolationHistory(
            person_id=person.person_id,
            person_type=person.person_type,
            person_name=person.full_name,
            violation_type=violation_type.strip(),
            violation_details=violation_details,
            recorded_by=recorded_by or DEFAULT_ACTOR,
            status=LedgerStatus.ACTIVE.value,
            created_at=ensure_utc(now),
        )
        self.db.add(record)

        person.violation_type = record.violation_type
        person.violation_details = violation_details

        self.db.commit()
        self.db.refresh(record)
        logger.info(
            "Violation recorded for %s %s: %s by %s",
            person.person_type, person.person_id, record.violation_type, record.recorded_by,
        )
        return record

    def remove_violation(
        self,
        person_id: str,
        person_type: str,
        now: datetime.datetime,
        removed_by: Optional[str] = None,
        removal_reason: Optional[str] = None,
    ) -> List[ViolationHistory]:
        """Clear a person's violation; same idempotence rules as BanLedger.remove_ban."""
        person = get_person(self.db, person_id, person_type, for_update=True)
        removed_by = removed_by or DEFAULT_ACTOR
        removal_reason = removal_reason or DEFAULT_REMOVAL_REASON
        now = ensure_utc(now)

        active = (
            self.db.query(ViolationHistory)
            .filter(
                ViolationHistory.person_id == person.person_id,
                ViolationHistory.person_type == person.person_type,
                ViolationHistory.status == LedgerStatus.ACTIVE.value,
            )
            .order_by(ViolationHistory.created_at.desc())
            .all()
        )

        if not active and not person.violation_type:
            return []

        for record in active:
            record.status = LedgerStatus.REMOVED.value
            record.removed_at = now
            record.removed_by = removed_by
            record.removal_reason = removal_reason

        if not active:
            audit = ViolationHistory(
                person_id=person.person_id,
                person_type=person.person_type,
                person_name=person.full_name,
                violation_type=person.violation_type,
                violation_details=person.violation_details,
                recorded_by=DEFAULT_ACTOR,
                status=LedgerStatus.REMOVED.value,
                created_at=now,
                removed_at=now,
                removed_by=removed_by,
                removal_reason=removal_reason,
            )
            self.db.add(audit)
            active = [audit]

        person.violation_type = None
        person.violation_details = None
        self.db.commit()
        logger.info("Violation removed from %s %s by %s", person.person_type, person.person_id, removed_by)
        return active

    def history(self, **filters) -> List[ViolationHistory]:
        return _history_query(self.db, ViolationHistory, **filters)

    def stats(self) -> Dict[str, Any]:
        by_status = dict(
            self.db.query(ViolationHistory.status, func.count(ViolationHistory.id))
            .group_by(ViolationHistory.status)
            .all()
        )
        types = (
            self.db.query(ViolationHistory.violation_type, func.count(ViolationHistory.id))
            .group_by(ViolationHistory.violation_type)
            .order_by(func.count(ViolationHistory.id).desc())
            .all()
        )
        return {
            "total_violations": sum(by_status.values()),
            "active_violations": by_status.get(LedgerStatus.ACTIVE.value, 0),
            "removed_violations": by_status.get(LedgerStatus.REMOVED.value, 0),
            "violation_types": [{"violation_type": t, "count": c} for t, c in types],
        }

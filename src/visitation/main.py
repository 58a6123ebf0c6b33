import datetime
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import config
from .clock import Clock, get_clock
from .custom_timer import CustomTimerStaging
from .database import engine, get_db
from .exceptions import VisitationError
from .ledgers import BanLedger, ViolationLedger, ban_details, is_effectively_banned
from .logging_config import setup_logging
from .models import Base
from .registry import get_person, normalize_person_type, register_person
from .schemas import (
    ActiveTimerOut,
    BanActionOut,
    BannedPersonOut,
    BanHistoryOut,
    BanRemovalOut,
    BanRequest,
    BanStatsOut,
    BanStatusOut,
    BanSweepOut,
    CheckInRequest,
    CheckOutRequest,
    CustomTimerOut,
    CustomTimerRequest,
    CustomTimerStatus,
    PersonCreate,
    PersonOut,
    RemovalRequest,
    TimerStatusOut,
    TimerSweepOut,
    ViolationActionOut,
    ViolationHistoryOut,
    ViolationRemovalOut,
    ViolationRequest,
    ViolationStatsOut,
    VisitLogOut,
    VisitStatsOut,
)
from .timer_lifecycle import TimerLifecycle, TimerSnapshot, effective_status
from .visit_sessions import VisitSessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Alembic owns the schema in deployments; this only fills gaps in a dev database
    Base.metadata.create_all(bind=engine)
    logger.info("Visitation API started (facility timezone %s)", config.FACILITY_TIMEZONE)
    yield


app = FastAPI(
    title="Visitation Timer Backend",
    description="API for visit timers, custom time slots, and the ban/violation ledgers of the visitor management system.",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "persons", "description": "Visitor and guest lookup"},
        {"name": "timers", "description": "Custom visit time slots"},
        {"name": "visits", "description": "Check-in, check-out and live visit timers"},
        {"name": "bans", "description": "Bans and ban history"},
        {"name": "violations", "description": "Violations and violation history"},
        {"name": "admin", "description": "Health and maintenance"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------- Error handling --------------------

@app.exception_handler(VisitationError)
async def visitation_error_handler(request: Request, exc: VisitationError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
    )


# -------------------- Response helpers --------------------

def _person_out(person, now: datetime.datetime) -> PersonOut:
    return PersonOut.model_validate(person).model_copy(
        update={"is_currently_banned": is_effectively_banned(person, now)}
    )


def _visit_out(log, now: datetime.datetime) -> VisitLogOut:
    return VisitLogOut.model_validate(log).model_copy(update={"status": effective_status(log, now)})


def _timer_out(snap: TimerSnapshot, now: datetime.datetime) -> ActiveTimerOut:
    return ActiveTimerOut(
        **_visit_out(snap.log, now).model_dump(),
        remaining_minutes=snap.remaining_minutes,
        urgency=snap.urgency.value,
    )


def _ban_record_out(record, now: datetime.datetime) -> BanHistoryOut:
    return BanHistoryOut.model_validate(record).model_copy(update=ban_details(record, now))


# -------------------- Health Check --------------------

# PUBLIC_INTERFACE
@app.get("/", tags=["admin"])
def health_check():
    """
    Health check endpoint.
    ---
    Returns {"message": "Healthy"} if API is up.
    """
    return {"message": "Healthy"}


# -------------------- Persons --------------------

# PUBLIC_INTERFACE
@app.post("/api/persons", response_model=PersonOut, status_code=201, tags=["persons"])
def create_person(payload: PersonCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """
    Registers a visitor or guest and assigns the next sequential id for its type.
    """
    now = clock.now()
    person = register_person(
        db,
        payload.person_type,
        payload.full_name,
        inmate_id=payload.inmate_id,
        visit_purpose=payload.visit_purpose,
        now=now,
    )
    return _person_out(person, now)


# PUBLIC_INTERFACE
@app.get("/api/persons/{person_type}/{person_id}", response_model=PersonOut, tags=["persons"])
def read_person(person_type: str, person_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Fetch one visitor or guest."""
    return _person_out(get_person(db, person_id, person_type), clock.now())


# -------------------- Custom timers --------------------

# PUBLIC_INTERFACE
@app.post("/api/timers/custom", response_model=CustomTimerStatus, tags=["timers"])
def set_custom_timer(payload: CustomTimerRequest, db: Session = Depends(get_db)):
    """
    Stage a custom time slot for the person's next check-in.
    Replaces any slot already staged. Slots must be 15 minutes to 8 hours.
    """
    record = CustomTimerStaging(db).stage(
        payload.person_id,
        payload.person_type,
        payload.start_time,
        payload.end_time,
        payload.duration,
    )
    return CustomTimerStatus(
        person_id=payload.person_id,
        person_type=normalize_person_type(payload.person_type),
        has_custom_timer=True,
        custom_timer=CustomTimerOut(**record.to_dict()),
    )


# PUBLIC_INTERFACE
@app.get("/api/timers/custom/{person_type}/{person_id}", response_model=CustomTimerStatus, tags=["timers"])
def verify_custom_timer(person_type: str, person_id: str, db: Session = Depends(get_db)):
    """Show the slot staged for a person, if any."""
    record = CustomTimerStaging(db).peek(person_id, person_type)
    return CustomTimerStatus(
        person_id=person_id,
        person_type=normalize_person_type(person_type),
        has_custom_timer=record is not None,
        custom_timer=CustomTimerOut(**record.to_dict()) if record else None,
    )


# PUBLIC_INTERFACE
@app.delete("/api/timers/custom/{person_type}/{person_id}", response_model=CustomTimerStatus, tags=["timers"])
def clear_custom_timer(person_type: str, person_id: str, db: Session = Depends(get_db)):
    """Cancel a staged slot. Clearing when nothing is staged is not an error."""
    CustomTimerStaging(db).clear(person_id, person_type)
    return CustomTimerStatus(
        person_id=person_id,
        person_type=normalize_person_type(person_type),
        has_custom_timer=False,
    )


# -------------------- Visits --------------------

# PUBLIC_INTERFACE
@app.post("/api/visits/check-in", response_model=VisitLogOut, status_code=201, tags=["visits"])
def check_in(payload: CheckInRequest, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """
    Time a person in and start their visit timer.
    Uses the staged custom slot when there is one, otherwise the standard window.
    Returns 403 for banned persons and 409 when a timer is already running.
    """
    now = clock.now()
    log = TimerLifecycle(db).start_timer(
        payload.person_id,
        payload.person_type,
        now,
        inmate_id=payload.inmate_id,
        purpose=payload.purpose,
    )
    return _visit_out(log, now)


# PUBLIC_INTERFACE
@app.post("/api/visits/check-out", response_model=VisitLogOut, tags=["visits"])
def check_out_person(payload: CheckOutRequest, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Time a person out of their active visit."""
    now = clock.now()
    log = TimerLifecycle(db).check_out_person(payload.person_id, payload.person_type, now)
    return _visit_out(log, now)


# PUBLIC_INTERFACE
@app.post("/api/visits/{visit_log_id}/check-out", response_model=VisitLogOut, tags=["visits"])
def check_out(visit_log_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Close an open visit log and record its duration."""
    now = clock.now()
    return _visit_out(TimerLifecycle(db).stop_timer(visit_log_id, now), now)


# PUBLIC_INTERFACE
@app.get("/api/visits/active-timers", response_model=List[ActiveTimerOut], tags=["visits"])
def active_timers(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """
    Live timers for the dashboards, soonest to end first.
    Each entry carries remainingMinutes and urgency (normal, warning, critical).
    """
    now = clock.now()
    return [_timer_out(snap, now) for snap in TimerLifecycle(db).active_timers(now)]


# PUBLIC_INTERFACE
@app.get("/api/visits/timer/{person_type}/{person_id}", response_model=TimerStatusOut, tags=["visits"])
def timer_status(person_type: str, person_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Running timer and staged slot for one person."""
    now = clock.now()
    status = TimerLifecycle(db).timer_status(person_id, person_type, now)
    person = status["person"]
    snap = status["timer"]
    staged = status["custom_timer"]
    return TimerStatusOut(
        person_id=person.person_id,
        person_type=person.person_type,
        has_active_timer=snap is not None and not snap.is_expired,
        status=status["status"],
        timer=_timer_out(snap, now) if snap else None,
        custom_timer=CustomTimerOut(**staged.to_dict()) if staged else None,
    )


# PUBLIC_INTERFACE
@app.get("/api/visits", response_model=List[VisitLogOut], tags=["visits"])
def list_visits(
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
    person_type: Optional[str] = None,
    person_id: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Visit logs, newest first.

    Args:
        start_date, end_date: inclusive calendar visit dates (YYYY-MM-DD).
        person_type, person_id, status: optional exact filters.
    """
    now = clock.now()
    logs = VisitSessionStore(db).list_logs(
        start_date=start_date,
        end_date=end_date,
        person_type=person_type,
        person_id=person_id,
        status=status,
    )
    return [_visit_out(log, now) for log in logs]


# PUBLIC_INTERFACE
@app.get("/api/visits/stats/{person_type}/{person_id}", response_model=VisitStatsOut, tags=["visits"])
def visit_stats(person_type: str, person_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Visit totals, average duration and recent visits for one person."""
    now = clock.now()
    person = get_person(db, person_id, person_type)
    stats = VisitSessionStore(db).visit_stats(person.person_id, person.person_type)
    stats["recent_visits"] = [_visit_out(log, now) for log in stats["recent_visits"]]
    return VisitStatsOut(person_id=person.person_id, person_type=person.person_type, **stats)


# PUBLIC_INTERFACE
@app.post("/api/visits/expire-check", response_model=TimerSweepOut, tags=["admin"])
def expire_visit_timers(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Persist status=expired on every in-progress visit whose timer has ended."""
    expired = TimerLifecycle(db).expire_overdue(clock.now())
    return TimerSweepOut(expired_count=len(expired), visit_log_ids=[log.id for log in expired])


# -------------------- Bans --------------------

# PUBLIC_INTERFACE
@app.put("/api/persons/{person_type}/{person_id}/ban", response_model=BanActionOut, tags=["bans"])
def ban_person(
    person_type: str,
    person_id: str,
    payload: BanRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Ban a visitor or guest. Banning someone already banned replaces the ban details.
    Custom bans need an endDate after the start date.
    """
    now = clock.now()
    record = BanLedger(db).apply_ban(
        person_id,
        person_type,
        payload.reason,
        payload.duration,
        now,
        start_date=payload.start_date,
        end_date=payload.end_date,
        notes=payload.notes,
        banned_by=payload.banned_by,
    )
    person = get_person(db, person_id, person_type)
    return BanActionOut(
        message=f"{person.full_name} has been banned",
        person=_person_out(person, now),
        record=_ban_record_out(record, now),
    )


# PUBLIC_INTERFACE
@app.put("/api/persons/{person_type}/{person_id}/remove-ban", response_model=BanRemovalOut, tags=["bans"])
def remove_ban(
    person_type: str,
    person_id: str,
    payload: Optional[RemovalRequest] = Body(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Lift a ban. Safe to repeat: removing a ban that is not there changes nothing."""
    now = clock.now()
    payload = payload or RemovalRequest()
    removed = BanLedger(db).remove_ban(
        person_id,
        person_type,
        now,
        removed_by=payload.removed_by,
        removal_reason=payload.removal_reason,
    )
    person = get_person(db, person_id, person_type)
    return BanRemovalOut(
        message=f"Ban removed from {person.full_name}" if removed else f"{person.full_name} is not banned",
        person=_person_out(person, now),
        removed_records=[_ban_record_out(r, now) for r in removed],
    )


# PUBLIC_INTERFACE
@app.get("/api/bans/current", response_model=List[BannedPersonOut], tags=["bans"])
def currently_banned(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Persons whose ban is in force right now. Lapsed bans are left out."""
    now = clock.now()
    return [
        BannedPersonOut(**_person_out(p, now).model_dump(), **ban_details(p, now))
        for p in BanLedger(db).currently_banned(now)
    ]


# PUBLIC_INTERFACE
@app.get("/api/bans/status/{person_type}/{person_id}", response_model=BanStatusOut, tags=["bans"])
def ban_status(person_type: str, person_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Whether a person is banned now, with time remaining for temporary bans."""
    status = BanLedger(db).ban_status(person_id, person_type, clock.now())
    person = status.pop("person")
    return BanStatusOut(
        person_id=person.person_id,
        person_type=person.person_type,
        full_name=person.full_name,
        **status,
    )


# PUBLIC_INTERFACE
@app.post("/api/bans/expire-check", response_model=BanSweepOut, tags=["admin"])
def expire_bans(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Mark lapsed ban records expired and clear stale ban flags."""
    return BanSweepOut(**BanLedger(db).expire_lapsed_bans(clock.now()))


# PUBLIC_INTERFACE
@app.get("/api/ban-history", response_model=List[BanHistoryOut], tags=["bans"])
def ban_history(
    person_id: Optional[str] = None,
    person_type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Ban ledger, newest first.
    `search` matches person name or id; dates are inclusive calendar dates.
    """
    now = clock.now()
    records = BanLedger(db).history(
        person_id=person_id,
        person_type=person_type,
        status=status,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    return [_ban_record_out(r, now) for r in records]


# PUBLIC_INTERFACE
@app.get("/api/ban-history/stats", response_model=BanStatsOut, tags=["bans"])
def ban_history_stats(db: Session = Depends(get_db)):
    """Ban counts by status and by month."""
    return BanStatsOut(**BanLedger(db).stats())


# -------------------- Violations --------------------

# PUBLIC_INTERFACE
@app.put("/api/persons/{person_type}/{person_id}/violation", response_model=ViolationActionOut, tags=["violations"])
def record_violation(
    person_type: str,
    person_id: str,
    payload: ViolationRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Record a violation against a visitor or guest."""
    now = clock.now()
    record = ViolationLedger(db).apply_violation(
        person_id,
        person_type,
        payload.violation_type,
        now,
        violation_details=payload.violation_details,
        recorded_by=payload.recorded_by,
    )
    person = get_person(db, person_id, person_type)
    return ViolationActionOut(
        message=f"Violation recorded for {person.full_name}",
        person=_person_out(person, now),
        record=ViolationHistoryOut.model_validate(record),
    )


# PUBLIC_INTERFACE
@app.put("/api/persons/{person_type}/{person_id}/remove-violation", response_model=ViolationRemovalOut, tags=["violations"])
def remove_violation(
    person_type: str,
    person_id: str,
    payload: Optional[RemovalRequest] = Body(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Clear a person's violation. Safe to repeat."""
    now = clock.now()
    payload = payload or RemovalRequest()
    removed = ViolationLedger(db).remove_violation(
        person_id,
        person_type,
        now,
        removed_by=payload.removed_by,
        removal_reason=payload.removal_reason,
    )
    person = get_person(db, person_id, person_type)
    return ViolationRemovalOut(
        message=f"Violation removed from {person.full_name}" if removed else f"{person.full_name} has no violation",
        person=_person_out(person, now),
        removed_records=[ViolationHistoryOut.model_validate(r) for r in removed],
    )


# PUBLIC_INTERFACE
@app.get("/api/violation-history", response_model=List[ViolationHistoryOut], tags=["violations"])
def violation_history(
    person_id: Optional[str] = None,
    person_type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
    db: Session = Depends(get_db),
):
    """Violation ledger, newest first, with the same filters as the ban history."""
    return ViolationLedger(db).history(
        person_id=person_id,
        person_type=person_type,
        status=status,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )


# PUBLIC_INTERFACE
@app.get("/api/violation-history/stats", response_model=ViolationStatsOut, tags=["violations"])
def violation_history_stats(db: Session = Depends(get_db)):
    """Violation counts by status and by type."""
    return ViolationStatsOut(**ViolationLedger(db).stats())

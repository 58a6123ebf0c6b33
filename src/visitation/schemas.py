"""
Pydantic request/response schemas for the visitation API.
JSON bodies use camelCase keys (isCustomTimer, totalDurationMinutes, ...);
snake_case field names are accepted on input as well.
"""

import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -------------------- Persons --------------------

class PersonCreate(ApiModel):
    person_type: str = Field(..., examples=["visitor"], description="'visitor' or 'guest'")
    full_name: str = Field(..., examples=["Alice Smith"])
    inmate_id: Optional[str] = Field(None, description="Inmate being visited (visitors)")
    visit_purpose: Optional[str] = Field(None, description="Purpose of visit (guests)")


class PersonOut(ApiModel):
    person_id: str
    person_type: str
    full_name: str
    inmate_id: Optional[str] = None
    visit_purpose: Optional[str] = None
    has_timed_in: bool
    has_timed_out: bool
    last_visit_date: Optional[datetime.date] = None
    total_visits: int
    last_visit_duration: Optional[str] = None
    custom_timer_start: Optional[str] = None
    custom_timer_end: Optional[str] = None
    custom_timer_duration: Optional[str] = None
    is_banned: bool
    is_currently_banned: bool = False
    ban_reason: Optional[str] = None
    ban_duration: Optional[str] = None
    ban_start_date: Optional[datetime.datetime] = None
    ban_end_date: Optional[datetime.datetime] = None
    calculated_duration: Optional[str] = None
    ban_notes: Optional[str] = None
    violation_type: Optional[str] = None
    violation_details: Optional[str] = None
    created_at: datetime.datetime


# -------------------- Custom timers --------------------

class CustomTimerRequest(ApiModel):
    person_id: str
    person_type: str
    start_time: str = Field(..., examples=["09:00 AM"])
    end_time: str = Field(..., examples=["11:00 AM"])
    duration: Optional[str] = Field(None, examples=["2h 0m"], description="Recomputed from the slot")


class CustomTimerOut(ApiModel):
    start_time: str
    end_time: str
    duration: str


class CustomTimerStatus(ApiModel):
    person_id: str
    person_type: str
    has_custom_timer: bool
    custom_timer: Optional[CustomTimerOut] = None


# -------------------- Visits --------------------

class CheckInRequest(ApiModel):
    person_id: str
    person_type: str
    inmate_id: Optional[str] = None
    purpose: Optional[str] = None


class CheckOutRequest(ApiModel):
    person_id: str
    person_type: str


class VisitLogOut(ApiModel):
    id: int
    person_id: str
    person_type: str
    person_name: Optional[str] = None
    inmate_id: Optional[str] = None
    purpose: Optional[str] = None
    visit_date: datetime.date
    time_in: str
    time_out: Optional[str] = None
    visit_duration: Optional[str] = None
    timer_start: datetime.datetime
    timer_end: datetime.datetime
    is_timer_active: bool
    is_custom_timer: bool
    custom_start_time: Optional[str] = None
    custom_end_time: Optional[str] = None
    total_duration_minutes: int
    status: str
    checked_out_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime


class ActiveTimerOut(VisitLogOut):
    remaining_minutes: int
    urgency: str


class TimerStatusOut(ApiModel):
    person_id: str
    person_type: str
    has_active_timer: bool
    status: Optional[str] = None
    timer: Optional[ActiveTimerOut] = None
    custom_timer: Optional[CustomTimerOut] = None


class MonthlyCount(ApiModel):
    month: str
    count: int


class VisitStatsOut(ApiModel):
    person_id: str
    person_type: str
    total_visits: int
    completed_visits: int
    expired_visits: int
    average_visit_duration: str
    last_visit_date: Optional[datetime.date] = None
    monthly_visits: List[MonthlyCount]
    recent_visits: List[VisitLogOut]


class TimerSweepOut(ApiModel):
    expired_count: int
    visit_log_ids: List[int]


# -------------------- Bans & violations --------------------

class BanRequest(ApiModel):
    reason: str = Field(..., examples=["Contraband"])
    duration: str = Field(..., examples=["1_week"], description="1_week, 2_weeks, 1_month, 3_months, 6_months, 1_year, permanent or custom")
    start_date: Optional[datetime.datetime] = None
    end_date: Optional[datetime.datetime] = Field(None, description="Required for custom bans")
    notes: Optional[str] = None
    banned_by: Optional[str] = None


class RemovalRequest(ApiModel):
    removed_by: Optional[str] = None
    removal_reason: Optional[str] = None


class ViolationRequest(ApiModel):
    violation_type: str = Field(..., examples=["Unauthorized item"])
    violation_details: Optional[str] = None
    recorded_by: Optional[str] = None


class BanDetails(ApiModel):
    calculated_end_date: Optional[datetime.datetime] = None
    time_remaining: Optional[str] = None
    exact_duration: Optional[str] = None
    is_expired: bool = False
    is_permanent: bool = False
    duration_display: Optional[str] = None


class BanHistoryOut(BanDetails):
    id: int
    person_id: str
    person_type: str
    person_name: str
    ban_reason: str
    ban_duration: str
    ban_start_date: Optional[datetime.datetime] = None
    ban_end_date: Optional[datetime.datetime] = None
    calculated_duration: Optional[str] = None
    ban_notes: Optional[str] = None
    banned_by: Optional[str] = None
    status: str
    created_at: datetime.datetime
    removed_at: Optional[datetime.datetime] = None
    removed_by: Optional[str] = None
    removal_reason: Optional[str] = None


class ViolationHistoryOut(ApiModel):
    id: int
    person_id: str
    person_type: str
    person_name: str
    violation_type: str
    violation_details: Optional[str] = None
    recorded_by: Optional[str] = None
    status: str
    created_at: datetime.datetime
    removed_at: Optional[datetime.datetime] = None
    removed_by: Optional[str] = None
    removal_reason: Optional[str] = None


class BannedPersonOut(PersonOut, BanDetails):
    pass


class BanStatusOut(BanDetails):
    person_id: str
    person_type: str
    full_name: str
    is_banned: bool
    ban_reason: Optional[str] = None
    ban_duration: Optional[str] = None
    ban_start_date: Optional[datetime.datetime] = None
    ban_notes: Optional[str] = None


class BanActionOut(ApiModel):
    message: str
    person: PersonOut
    record: Optional[BanHistoryOut] = None


class BanRemovalOut(ApiModel):
    message: str
    person: PersonOut
    removed_records: List[BanHistoryOut]


class ViolationActionOut(ApiModel):
    message: str
    person: PersonOut
    record: Optional[ViolationHistoryOut] = None


class ViolationRemovalOut(ApiModel):
    message: str
    person: PersonOut
    removed_records: List[ViolationHistoryOut]


class BanStatsOut(ApiModel):
    total_bans: int
    active_bans: int
    removed_bans: int
    expired_bans: int
    monthly_bans: List[MonthlyCount]


class ViolationTypeCount(ApiModel):
    violation_type: str
    count: int


class ViolationStatsOut(ApiModel):
    total_violations: int
    active_violations: int
    removed_violations: int
    violation_types: List[ViolationTypeCount]


class BanSweepOut(ApiModel):
    expired_records: int
    cleared_persons: int

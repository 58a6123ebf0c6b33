"""
Unit Tests for the Timer Lifecycle
Tests for: check-in windows, conflicts, check-out, urgency and expiry
"""
import datetime

import pytest

from visitation.custom_timer import CustomTimerRecord, CustomTimerStaging
from visitation.exceptions import (
    ConflictError,
    PersonBannedError,
    PersonNotFoundError,
    VisitLogNotFoundError,
)
from visitation.ledgers import BanLedger
from visitation.models import VisitLog, VisitStatus
from visitation.timer_lifecycle import (
    TimerLifecycle,
    Urgency,
    classify,
    effective_status,
    remaining,
    resolve_window,
)

from conftest import T0, at


class TestClassify:
    """Test urgency classification"""

    @pytest.mark.parametrize("minutes,expected", [
        (180, Urgency.NORMAL),
        (30, Urgency.NORMAL),
        (29, Urgency.WARNING),
        (10, Urgency.WARNING),
        (9, Urgency.CRITICAL),
        (1, Urgency.CRITICAL),
        (0, Urgency.EXPIRED),
        (-5, Urgency.EXPIRED),
    ])
    def test_boundaries(self, minutes, expected):
        assert classify(minutes) is expected

    @pytest.mark.parametrize("value", [None, "soon", object()])
    def test_never_fails(self, value):
        assert classify(value) is Urgency.NORMAL

    def test_remaining_floors_and_clamps(self):
        end = at(9, 10)
        assert remaining(at(9, 5) + datetime.timedelta(seconds=30), end) == 4
        assert remaining(at(9, 10), end) == 0
        assert remaining(at(11), end) == 0


class TestResolveWindow:
    """Test how a staged slot becomes a timer window"""

    def test_no_slot_is_standard(self):
        window = resolve_window(T0, None)
        assert (window.timer_start, window.timer_end, window.is_custom) == (T0, at(12, 5), False)

    def test_late_arrival_keeps_slot_end(self):
        window = resolve_window(T0, CustomTimerRecord("09:00 AM", "11:00 AM", "2h 0m"))
        assert window.is_custom
        assert window.timer_start == at(9)
        assert window.timer_end == at(11)
        assert window.duration_minutes == 120

    def test_early_arrival_uses_upcoming_slot(self):
        window = resolve_window(T0, CustomTimerRecord("11:00 AM", "01:00 PM", "2h 0m"))
        assert (window.timer_start, window.timer_end) == (at(11), at(13))

    def test_overnight_slot_ends_next_day(self):
        window = resolve_window(at(23), CustomTimerRecord("10:00 PM", "01:00 AM", "3h 0m"))
        assert (window.timer_start, window.timer_end) == (at(22), at(1, day=11))

    def test_overnight_slot_after_midnight(self):
        window = resolve_window(at(0, 30, day=11), CustomTimerRecord("10:00 PM", "01:00 AM", "3h 0m"))
        assert (window.timer_start, window.timer_end) == (at(22), at(1, day=11))

    def test_slot_already_over_falls_back(self):
        window = resolve_window(T0, CustomTimerRecord("06:00 AM", "07:00 AM", "1h 0m"))
        assert not window.is_custom
        assert window.timer_end == at(12, 5)


class TestStartTimer:
    """Test check-in"""

    def test_standard_timer(self, db_session, make_person):
        person = make_person()
        log = TimerLifecycle(db_session).start_timer(person.person_id, "visitor", T0)

        assert log.status == VisitStatus.IN_PROGRESS.value
        assert log.time_in == "09:05 AM"
        assert log.timer_end == at(12, 5)
        assert log.total_duration_minutes == 180
        assert log.is_custom_timer is False
        assert log.inmate_id == person.inmate_id
        assert log.visit_date == datetime.date(2025, 3, 10)
        db_session.refresh(person)
        assert person.has_timed_in is True
        assert person.has_timed_out is False

    def test_custom_timer_is_consumed(self, db_session, make_person):
        person = make_person()
        CustomTimerStaging(db_session).stage(person.person_id, "visitor", "09:00 AM", "11:00 AM")

        log = TimerLifecycle(db_session).start_timer(person.person_id, "visitor", T0)

        assert log.is_custom_timer is True
        assert log.timer_end == at(11)
        assert log.total_duration_minutes == 120
        assert (log.custom_start_time, log.custom_end_time) == ("09:00 AM", "11:00 AM")
        assert CustomTimerStaging(db_session).peek(person.person_id, "visitor") is None

    def test_second_check_in_conflicts(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        lifecycle.start_timer(person.person_id, "visitor", T0)

        with pytest.raises(ConflictError):
            lifecycle.start_timer(person.person_id, "visitor", T0 + datetime.timedelta(minutes=1))

        assert db_session.query(VisitLog).filter(VisitLog.status == "in-progress").count() == 1

    def test_conflict_keeps_staged_slot(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        lifecycle.start_timer(person.person_id, "visitor", T0)
        CustomTimerStaging(db_session).stage(person.person_id, "visitor", "01:00 PM", "02:00 PM")

        with pytest.raises(ConflictError):
            lifecycle.start_timer(person.person_id, "visitor", T0)

        assert CustomTimerStaging(db_session).peek(person.person_id, "visitor") is not None

    def test_stale_timer_is_expired_on_new_check_in(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        first = lifecycle.start_timer(person.person_id, "visitor", T0)

        second = lifecycle.start_timer(person.person_id, "visitor", at(13))

        db_session.refresh(first)
        assert first.status == VisitStatus.EXPIRED.value
        assert second.status == VisitStatus.IN_PROGRESS.value

    def test_banned_person_cannot_check_in(self, db_session, make_person):
        person = make_person()
        BanLedger(db_session).apply_ban(person.person_id, "visitor", "Contraband", "permanent", T0)

        with pytest.raises(PersonBannedError) as exc_info:
            TimerLifecycle(db_session).start_timer(person.person_id, "visitor", T0)

        assert exc_info.value.status_code == 403
        assert db_session.query(VisitLog).count() == 0

    def test_lapsed_ban_does_not_block(self, db_session, make_person):
        person = make_person()
        BanLedger(db_session).apply_ban(
            person.person_id, "visitor", "Late return", "1_week", T0 - datetime.timedelta(days=8)
        )
        log = TimerLifecycle(db_session).start_timer(person.person_id, "visitor", T0)
        assert log.status == VisitStatus.IN_PROGRESS.value

    def test_unknown_person(self, db_session):
        with pytest.raises(PersonNotFoundError):
            TimerLifecycle(db_session).start_timer("404", "visitor", T0)


class TestStopTimer:
    """Test check-out"""

    def test_stop_records_duration(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        log = lifecycle.start_timer(person.person_id, "visitor", T0)

        stopped = lifecycle.stop_timer(log.id, at(10, 35))

        assert stopped.status == VisitStatus.COMPLETED.value
        assert stopped.time_out == "10:35 AM"
        assert stopped.visit_duration == "1h 30m"
        assert stopped.is_timer_active is False
        db_session.refresh(person)
        assert person.has_timed_out is True
        assert person.total_visits == 1
        assert person.last_visit_duration == "1h 30m"

    def test_short_visit_in_minutes(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        log = lifecycle.start_timer(person.person_id, "visitor", T0)
        assert lifecycle.stop_timer(log.id, at(9, 50)).visit_duration == "45m"

    def test_stop_twice(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        log = lifecycle.start_timer(person.person_id, "visitor", T0)
        lifecycle.stop_timer(log.id, at(10))

        with pytest.raises(VisitLogNotFoundError):
            lifecycle.stop_timer(log.id, at(10, 5))

    def test_stop_missing(self, db_session):
        with pytest.raises(VisitLogNotFoundError):
            TimerLifecycle(db_session).stop_timer(99, T0)

    def test_check_out_person(self, db_session, make_person):
        person = make_person("guest")
        lifecycle = TimerLifecycle(db_session)
        lifecycle.start_timer(person.person_id, "guest", T0)

        log = lifecycle.check_out_person(person.person_id, "guest", at(11))
        assert log.visit_duration == "1h 55m"

        with pytest.raises(VisitLogNotFoundError):
            lifecycle.check_out_person(person.person_id, "guest", at(11, 5))

    def test_staged_slot_is_one_shot(self, db_session, make_person):
        person = make_person()
        CustomTimerStaging(db_session).stage(person.person_id, "visitor", "09:00 AM", "11:00 AM")
        lifecycle = TimerLifecycle(db_session)

        first = lifecycle.start_timer(person.person_id, "visitor", T0)
        lifecycle.stop_timer(first.id, at(10))
        second = lifecycle.start_timer(person.person_id, "visitor", at(10, 30))

        assert first.is_custom_timer is True
        assert second.is_custom_timer is False
        assert second.total_duration_minutes == 180


class TestExpiry:
    """Test passive and persisted expiry"""

    def test_effective_status(self, db_session, make_person):
        person = make_person()
        log = TimerLifecycle(db_session).start_timer(person.person_id, "visitor", T0)

        assert effective_status(log, at(12)) == "in-progress"
        assert effective_status(log, at(12, 5)) == "expired"

    def test_active_timers_snapshot(self, db_session, make_person):
        a, b = make_person(), make_person()
        lifecycle = TimerLifecycle(db_session)
        lifecycle.start_timer(a.person_id, "visitor", T0)
        lifecycle.start_timer(b.person_id, "visitor", at(7))

        snaps = lifecycle.active_timers(at(9, 55))

        assert [(s.log.person_id, s.remaining_minutes, s.urgency) for s in snaps] == [
            (b.person_id, 5, Urgency.CRITICAL),
            (a.person_id, 130, Urgency.NORMAL),
        ]

    def test_expire_overdue_is_idempotent(self, db_session, make_person):
        a, b = make_person(), make_person()
        lifecycle = TimerLifecycle(db_session)
        early = lifecycle.start_timer(a.person_id, "visitor", at(6))
        lifecycle.start_timer(b.person_id, "visitor", T0)

        first = lifecycle.expire_overdue(T0)
        second = lifecycle.expire_overdue(T0)

        assert [log.id for log in first] == [early.id]
        assert second == []
        db_session.refresh(early)
        assert early.status == VisitStatus.EXPIRED.value
        assert early.is_timer_active is False

    def test_timer_status(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        lifecycle.start_timer(person.person_id, "visitor", T0)
        CustomTimerStaging(db_session).stage(person.person_id, "visitor", "02:00 PM", "03:00 PM")

        status = lifecycle.timer_status(person.person_id, "visitor", at(11, 50))

        assert status["timer"].remaining_minutes == 15
        assert status["timer"].urgency is Urgency.WARNING
        assert status["status"] == "in-progress"
        assert status["custom_timer"].start_time == "02:00 PM"

    def test_check_out_after_sweep(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        log = lifecycle.start_timer(person.person_id, "visitor", at(6))
        lifecycle.expire_overdue(at(9, 30))

        closed = lifecycle.check_out_person(person.person_id, "visitor", at(10))

        assert closed.id == log.id
        assert closed.status == VisitStatus.EXPIRED.value
        assert closed.time_out == "10:00 AM"
        assert closed.visit_duration == "4h 0m"
        db_session.refresh(person)
        assert person.has_timed_out is True
        assert person.total_visits == 1

        with pytest.raises(VisitLogNotFoundError):
            lifecycle.check_out_person(person.person_id, "visitor", at(10, 5))
        with pytest.raises(VisitLogNotFoundError):
            lifecycle.stop_timer(log.id, at(10, 5))

    def test_closing_swept_log_keeps_new_visit_running(self, db_session, make_person):
        person = make_person()
        lifecycle = TimerLifecycle(db_session)
        old = lifecycle.start_timer(person.person_id, "visitor", at(5))
        lifecycle.expire_overdue(at(8, 30))
        current = lifecycle.start_timer(person.person_id, "visitor", T0)

        lifecycle.stop_timer(old.id, at(9, 10))

        db_session.refresh(person)
        assert person.has_timed_out is False
        assert person.total_visits == 1
        assert lifecycle.check_out_person(person.person_id, "visitor", at(10)).id == current.id

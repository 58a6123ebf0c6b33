"""
Unit Tests for Custom Timer Staging
"""
import pytest

from visitation.custom_timer import CustomTimerRecord, CustomTimerStaging
from visitation.exceptions import FormatError, PersonNotFoundError, ValidationError
from visitation.time_arithmetic import Duration


class TestStage:
    """Test staging a custom slot"""

    def test_stage_computes_duration(self, db_session, make_person):
        person = make_person()
        record = CustomTimerStaging(db_session).stage(person.person_id, "visitor", "09:00 am", "11:00 am")

        assert record == CustomTimerRecord("09:00 AM", "11:00 AM", "2h 0m")
        assert record.slot_duration == Duration(2, 0)
        db_session.refresh(person)
        assert person.custom_timer_start == "09:00 AM"
        assert person.custom_timer_duration == "2h 0m"

    def test_supplied_duration_is_replaced(self, db_session, make_person):
        person = make_person()
        record = CustomTimerStaging(db_session).stage(person.person_id, "visitor", "09:00 AM", "10:30 AM", "5h 0m")
        assert record.duration == "1h 30m"

    def test_last_write_wins(self, db_session, make_person):
        person = make_person()
        staging = CustomTimerStaging(db_session)
        staging.stage(person.person_id, "visitor", "09:00 AM", "11:00 AM")
        staging.stage(person.person_id, "visitor", "01:00 PM", "02:00 PM")

        assert staging.peek(person.person_id, "visitor") == CustomTimerRecord("01:00 PM", "02:00 PM", "1h 0m")

    def test_invalid_slot_stages_nothing(self, db_session, make_person):
        person = make_person()
        staging = CustomTimerStaging(db_session)

        with pytest.raises(ValidationError):
            staging.stage(person.person_id, "visitor", "09:00 AM", "09:05 AM")
        with pytest.raises(FormatError):
            staging.stage(person.person_id, "visitor", "9am", "11:00 AM")

        assert staging.peek(person.person_id, "visitor") is None

    def test_unknown_person(self, db_session):
        with pytest.raises(PersonNotFoundError):
            CustomTimerStaging(db_session).stage("999", "guest", "09:00 AM", "11:00 AM")

    def test_staging_is_per_person_type(self, db_session, make_person):
        visitor = make_person("visitor")
        guest = make_person("guest")
        assert visitor.person_id == guest.person_id == "001"

        staging = CustomTimerStaging(db_session)
        staging.stage("001", "guest", "09:00 AM", "11:00 AM")

        assert staging.peek("001", "visitor") is None
        assert staging.peek("001", "guest") is not None


class TestConsume:
    """Test one-shot consumption"""

    def test_consume_is_one_shot(self, db_session, make_person):
        person = make_person()
        staging = CustomTimerStaging(db_session)
        staging.stage(person.person_id, "visitor", "09:00 AM", "11:00 AM")

        first = staging.consume(person.person_id, "visitor")
        second = staging.consume(person.person_id, "visitor")

        assert first == CustomTimerRecord("09:00 AM", "11:00 AM", "2h 0m")
        assert second is None

    def test_rollback_restores_slot(self, db_session, make_person):
        person = make_person()
        staging = CustomTimerStaging(db_session)
        staging.stage(person.person_id, "visitor", "09:00 AM", "11:00 AM")

        staging.consume(person.person_id, "visitor")
        db_session.rollback()

        assert staging.peek(person.person_id, "visitor") is not None

    def test_consume_without_slot(self, db_session, make_person):
        person = make_person()
        assert CustomTimerStaging(db_session).consume(person.person_id, "visitor") is None


class TestClear:
    """Test cancelling a staged slot"""

    def test_clear(self, db_session, make_person):
        person = make_person()
        staging = CustomTimerStaging(db_session)
        staging.stage(person.person_id, "visitor", "09:00 AM", "11:00 AM")

        assert staging.clear(person.person_id, "visitor") is True
        assert staging.clear(person.person_id, "visitor") is False
        assert staging.peek(person.person_id, "visitor") is None

    def test_to_dict(self):
        record = CustomTimerRecord("09:00 AM", "11:00 AM", "2h 0m")
        assert record.to_dict() == {"start_time": "09:00 AM", "end_time": "11:00 AM", "duration": "2h 0m"}

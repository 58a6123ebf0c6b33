"""
Unit Tests for Time Arithmetic
Tests for: display time parsing, durations, 12/24-hour conversion, slot validation
"""
import datetime

import pytest

from visitation.exceptions import FormatError, ValidationError
from visitation.time_arithmetic import (
    Duration,
    TimeOfDay,
    at_time_of_day,
    duration_between,
    format_clock_time,
    format_duration,
    parse_display_time,
    parse_duration_string,
    to_12_hour,
    to_24_hour,
    validate_time_slot,
)


class TestParseDisplayTime:
    """Test 12-hour display time parsing"""

    @pytest.mark.parametrize("value,expected", [
        ("09:00 AM", TimeOfDay(9, 0)),
        ("9:00am", TimeOfDay(9, 0)),
        ("12:00 AM", TimeOfDay(0, 0)),
        ("12:30 PM", TimeOfDay(12, 30)),
        ("11:59 PM", TimeOfDay(23, 59)),
        ("  3:15PM ", TimeOfDay(15, 15)),
    ])
    def test_valid_times(self, value, expected):
        assert parse_display_time(value) == expected

    @pytest.mark.parametrize("value", ["13:00 PM", "9:60 AM", "0900", "00:30 AM", "", "9:00", None])
    def test_invalid_times_raise_format_error(self, value):
        with pytest.raises(FormatError) as exc_info:
            parse_display_time(value)
        assert exc_info.value.code == "INVALID_TIME_FORMAT"


class TestDurationBetween:
    """Test durations between two times of day"""

    def test_same_day(self):
        assert duration_between(TimeOfDay(9, 0), TimeOfDay(11, 30)) == Duration(2, 30)

    def test_equal_times_is_zero(self):
        assert duration_between(TimeOfDay(14, 0), TimeOfDay(14, 0)) == Duration(0, 0)

    def test_end_one_minute_before_start_rolls_over(self):
        assert duration_between(TimeOfDay(10, 0), TimeOfDay(9, 59)) == Duration(23, 59)

    def test_overnight(self):
        assert duration_between(TimeOfDay(22, 0), TimeOfDay(1, 0)) == Duration(3, 0)


class TestFormatDuration:
    """Test duration display strings"""

    def test_with_hours(self):
        assert format_duration(Duration(2, 5)) == "2h 5m"

    def test_whole_hours_keep_minutes(self):
        assert format_duration(Duration(3, 0)) == "3h 0m"

    def test_minutes_only(self):
        assert format_duration(Duration(0, 45)) == "45m"

    def test_parse_duration_string(self):
        assert parse_duration_string("2h 30m") == 150
        assert parse_duration_string("45m") == 45
        assert parse_duration_string("N/A") is None
        assert parse_duration_string(None) is None


class TestClockConversion:
    """Test 12-hour / 24-hour conversion"""

    @pytest.mark.parametrize("value,expected", [
        ("14:05", "02:05 PM"),
        ("00:30", "12:30 AM"),
        ("12:00", "12:00 PM"),
        ("09:15", "09:15 AM"),
    ])
    def test_to_12_hour(self, value, expected):
        assert to_12_hour(value) == expected

    @pytest.mark.parametrize("value", ["00:00", "07:45", "12:59", "23:59"])
    def test_round_trip_from_24_hour(self, value):
        assert to_24_hour(to_12_hour(value)) == value

    @pytest.mark.parametrize("value", ["12:00 AM", "01:05 AM", "12:30 PM", "11:59 PM"])
    def test_round_trip_from_12_hour(self, value):
        assert to_12_hour(to_24_hour(value)) == value

    @pytest.mark.parametrize("hour,minute", [(0, 0), (9, 5), (12, 30), (21, 45)])
    def test_matches_recorded_times(self, hour, minute):
        recorded = format_clock_time(datetime.datetime(2025, 3, 10, hour, minute, tzinfo=datetime.timezone.utc))
        assert to_12_hour(to_24_hour(recorded)) == recorded

    @pytest.mark.parametrize("value", ["24:00", "7:45", "ab:cd"])
    def test_bad_24_hour_input(self, value):
        with pytest.raises(FormatError):
            to_12_hour(value)

    def test_bad_12_hour_input(self):
        with pytest.raises(FormatError):
            to_24_hour("25:00 PM")


class TestValidateTimeSlot:
    """Test custom slot validation"""

    def test_valid_slot_returns_duration(self):
        assert validate_time_slot("09:00 AM", "11:00 AM") == Duration(2, 0)

    def test_overnight_slot(self):
        assert validate_time_slot("10:00 PM", "01:00 AM") == Duration(3, 0)

    def test_zero_length_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_time_slot("09:00 AM", "09:00 AM")
        assert exc_info.value.message == "End time must be after start time"

    def test_below_minimum_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_time_slot("09:00 AM", "09:10 AM")
        assert "Minimum visit duration is 15 minutes" in exc_info.value.message

    def test_minimum_boundary_accepted(self):
        assert validate_time_slot("09:00 AM", "09:15 AM") == Duration(0, 15)

    def test_above_maximum_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_time_slot("08:00 AM", "05:00 PM")
        assert exc_info.value.details["duration_minutes"] == 540

    def test_maximum_boundary_accepted(self):
        assert validate_time_slot("08:00 AM", "04:00 PM") == Duration(8, 0)

    def test_custom_bounds(self):
        with pytest.raises(ValidationError):
            validate_time_slot("09:00 AM", "09:30 AM", min_minutes=60)

    def test_malformed_time_is_format_error(self):
        with pytest.raises(FormatError):
            validate_time_slot("9 AM", "11:00 AM")


class TestInstants:
    """Test conversion between instants and facility wall-clock time"""

    def test_format_clock_time_uses_leading_zero(self):
        instant = datetime.datetime(2025, 3, 10, 9, 5, tzinfo=datetime.timezone.utc)
        assert format_clock_time(instant) == "09:05 AM"

    def test_format_clock_time_treats_naive_as_utc(self):
        assert format_clock_time(datetime.datetime(2025, 3, 10, 21, 30)) == "09:30 PM"

    def test_at_time_of_day_in_other_zone(self):
        from zoneinfo import ZoneInfo

        instant = at_time_of_day(datetime.date(2025, 7, 1), TimeOfDay(9, 0), tz=ZoneInfo("America/New_York"))
        assert instant == datetime.datetime(2025, 7, 1, 13, 0, tzinfo=datetime.timezone.utc)

"""Tests for working-hours evaluation and slot availability."""

import json
import logging
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest
import pytz

from data.models import CalendarSettings
from services.availability import (
    ParsedSchedule,
    ScheduleParseFailed,
    generate_time_slots,
    is_available,
    is_day_active,
    parse_working_hours,
    staff_day_availability,
    sunday_based_weekday,
    to_remote_weekday,
    to_sunday_based_weekday,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def staff_with(entries):
    return SimpleNamespace(id="s1", working_hours=json.dumps(entries) if entries is not None else None)


WEEKDAYS_9_TO_17 = [
    {"day_of_week": day, "hour_from": 9, "hour_to": 17, "day_period": "morning"}
    for day in range(5)
]


def calendar_settings(**overrides):
    values = dict(
        time_interval=15,
        inactive_days="0",
        booking_months_ahead=5,
        working_hours_start="09:00",
        working_hours_end="17:00",
    )
    values.update(overrides)
    return CalendarSettings(**values)


class TestWeekdayConversion:
    # 2026-01-04 is a Sunday
    @pytest.mark.parametrize("offset, sunday_based, remote", [
        (0, 0, 6),
        (1, 1, 0),
        (2, 2, 1),
        (3, 3, 2),
        (4, 4, 3),
        (5, 5, 4),
        (6, 6, 5),
    ])
    def test_mapping_table(self, offset, sunday_based, remote):
        day = date(2026, 1, 4 + offset)

        assert sunday_based_weekday(day) == sunday_based
        assert to_remote_weekday(sunday_based) == remote

    @pytest.mark.parametrize("day", range(7))
    def test_round_trip(self, day):
        assert to_sunday_based_weekday(to_remote_weekday(day)) == day
        assert to_remote_weekday(to_sunday_based_weekday(day)) == day


class TestParseWorkingHours:
    def test_parses_entries(self):
        result = parse_working_hours(json.dumps(WEEKDAYS_9_TO_17))

        assert isinstance(result, ParsedSchedule)
        assert len(result.entries) == 5
        assert result.entries[0].hour_to == 17

    def test_accepts_remote_field_names(self):
        raw = json.dumps([{"dayofweek": "2", "hour_from": 8.5, "hour_to": 12.0}])

        result = parse_working_hours(raw)

        assert isinstance(result, ParsedSchedule)
        assert result.entries[0].day_of_week == 2

    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps({"day_of_week": 0}),
        json.dumps([{"day_of_week": 9, "hour_from": 9, "hour_to": 17}]),
        json.dumps([{"day_of_week": 0, "hour_from": 17, "hour_to": 9}]),
    ])
    def test_malformed_input_is_a_tagged_failure(self, raw):
        assert isinstance(parse_working_hours(raw), ScheduleParseFailed)


class TestIsAvailable:
    def test_remote_monday_matches_monday_not_tuesday(self):
        staff = staff_with([{"day_of_week": 0, "hour_from": 9, "hour_to": 17}])

        assert is_available(staff, utc(2026, 1, 5, 10), tz="UTC") is True  # Monday
        assert is_available(staff, utc(2026, 1, 6, 10), tz="UTC") is False  # Tuesday

    def test_end_hour_is_exclusive(self):
        staff = staff_with(WEEKDAYS_9_TO_17)

        assert is_available(staff, utc(2026, 1, 5, 9), tz="UTC") is True
        assert is_available(staff, utc(2026, 1, 5, 16, 59), tz="UTC") is True
        assert is_available(staff, utc(2026, 1, 5, 17), tz="UTC") is False

    def test_fractional_hours(self):
        staff = staff_with([{"day_of_week": 0, "hour_from": 9.5, "hour_to": 12.25}])

        assert is_available(staff, utc(2026, 1, 5, 9, 15), tz="UTC") is False
        assert is_available(staff, utc(2026, 1, 5, 9, 30), tz="UTC") is True
        assert is_available(staff, utc(2026, 1, 5, 12, 15), tz="UTC") is False

    def test_without_schedule_is_always_available(self):
        assert is_available(staff_with(None), utc(2026, 1, 4, 3), tz="UTC") is True

    def test_empty_schedule_is_never_available(self):
        assert is_available(staff_with([]), utc(2026, 1, 5, 10), tz="UTC") is False

    def test_malformed_schedule_fails_open_and_logs(self, caplog):
        staff = SimpleNamespace(id="s1", working_hours="{broken")

        with caplog.at_level(logging.WARNING):
            assert is_available(staff, utc(2026, 1, 5, 10), tz="UTC") is True

        assert "Unreadable working hours" in caplog.text

    def test_evaluates_in_business_timezone(self):
        staff = staff_with([{"day_of_week": 0, "hour_from": 9, "hour_to": 17}])
        instant = utc(2026, 1, 5, 8, 30)  # 09:30 in Berlin (CET)

        assert is_available(staff, instant, tz="Europe/Berlin") is True
        assert is_available(staff, instant, tz=pytz.utc) is False

    def test_naive_instant_is_read_as_utc(self):
        staff = staff_with([{"day_of_week": 0, "hour_from": 9, "hour_to": 17}])

        assert is_available(staff, datetime(2026, 1, 5, 8, 30), tz="Europe/Berlin") is True
        assert is_available(staff, datetime(2026, 1, 5, 16, 30), tz="Europe/Berlin") is False


class TestSlots:
    def test_sunday_inactive_by_default(self):
        settings_row = calendar_settings()

        assert is_day_active(settings_row, date(2026, 1, 4)) is False
        assert is_day_active(settings_row, date(2026, 1, 5)) is True

    def test_generate_time_slots(self):
        slots = generate_time_slots(calendar_settings(), date(2026, 1, 5), tz="UTC")

        assert len(slots) == 32
        assert slots[0] == utc(2026, 1, 5, 9)
        assert slots[-1] == utc(2026, 1, 5, 16, 45)

    def test_generate_time_slots_in_business_timezone(self):
        slots = generate_time_slots(
            calendar_settings(time_interval=30), date(2026, 1, 5), tz="Europe/Berlin"
        )

        assert len(slots) == 16
        assert slots[0] == utc(2026, 1, 5, 8)

    def test_staff_day_availability_marks_occupied_slots(self):
        staff = staff_with([{"day_of_week": 0, "hour_from": 9, "hour_to": 12}])
        appointments = [
            SimpleNamespace(
                id="a1",
                staff_id="s1",
                status="confirmed",
                start_time=utc(2026, 1, 5, 10),
                end_time=utc(2026, 1, 5, 10, 30),
            ),
            SimpleNamespace(
                id="a2",
                staff_id="s1",
                status="cancelled",
                start_time=utc(2026, 1, 5, 11),
                end_time=utc(2026, 1, 5, 12),
            ),
        ]

        slots = staff_day_availability(
            staff, date(2026, 1, 5), calendar_settings(time_interval=30), appointments, tz="UTC"
        )
        by_start = {slot.start.hour * 60 + slot.start.minute: slot for slot in slots}

        assert by_start[9 * 60].available is True
        assert by_start[9 * 60].occupied is False
        assert by_start[10 * 60].occupied is True
        assert by_start[10 * 60].appointment_id == "a1"
        assert by_start[10 * 60 + 30].occupied is False
        assert by_start[11 * 60].occupied is False
        assert by_start[12 * 60].available is False

    def test_inactive_day_has_no_slots(self):
        slots = staff_day_availability(
            staff_with(None), date(2026, 1, 4), calendar_settings(), [], tz="UTC"
        )

        assert slots == []

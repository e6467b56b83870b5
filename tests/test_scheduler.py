"""Tests for schedule parsing, matching and formatting."""
import pytest
from datetime import date, datetime, time
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from preventsleep.errors import ValidationError
from preventsleep.scheduler.models import ScheduleEntry
from preventsleep.scheduler.schedule import (
    NO_SCHEDULES,
    build_entry,
    describe_entry,
    desired_flags,
    parse_day_or_date,
    parse_time_range,
    schedule_lines,
)
from preventsleep.scheduler.types import (
    InhibitionFlags,
    OneOffRecurrence,
    Weekday,
    WeeklyRecurrence,
)

MONDAY_10AM = datetime(2024, 1, 15, 10, 0)  # Monday
MONDAY_6PM = datetime(2024, 1, 15, 18, 0)
TUESDAY_10AM = datetime(2024, 1, 16, 10, 0)


def weekly(day: Weekday, start: str, end: str, display: bool = False) -> ScheduleEntry:
    return ScheduleEntry(
        recurrence=WeeklyRecurrence(weekday=day),
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        keep_display_on=display,
    )


class TestParsing:
    """Tests for the textual control channel arguments."""

    @pytest.mark.parametrize("text", ["mon", "Mon", "MONDAY", " monday "])
    def test_weekday_names(self, text):
        assert parse_day_or_date(text) == WeeklyRecurrence(weekday=Weekday.MONDAY)

    def test_all_short_names(self):
        short = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
        assert [parse_day_or_date(s).weekday for s in short] == list(Weekday)

    def test_iso_date(self):
        assert parse_day_or_date("2026-12-24") == OneOffRecurrence(on=date(2026, 12, 24))

    @pytest.mark.parametrize("text", ["", "funday", "2026-13-01", "24/12/2026"])
    def test_invalid_day_or_date(self, text):
        with pytest.raises(ValidationError):
            parse_day_or_date(text)

    def test_time_range(self):
        assert parse_time_range("09:00-17:00") == (time(9, 0), time(17, 0))
        assert parse_time_range("9:30 - 17:45:10") == (time(9, 30), time(17, 45, 10))

    def test_single_point_range_is_allowed(self):
        assert parse_time_range("12:00-12:00") == (time(12), time(12))

    @pytest.mark.parametrize("text", ["", "9-17", "25:00-26:00", "09:00", "09:60-10:00"])
    def test_invalid_time_range(self, text):
        with pytest.raises(ValidationError):
            parse_time_range(text)

    def test_range_does_not_wrap_midnight(self):
        """22:00-02:00 is rejected instead of silently wrapping."""
        with pytest.raises(ValidationError, match="start must not be after end"):
            parse_time_range("22:00-02:00")

    def test_build_entry(self):
        entry = build_entry("fri", "08:00-12:00", keep_display_on=True)

        assert entry.recurrence == WeeklyRecurrence(weekday=Weekday.FRIDAY)
        assert entry.start_time == time(8)
        assert entry.end_time == time(12)
        assert entry.keep_display_on is True


class TestScheduleEntry:
    """Tests for the ScheduleEntry model."""

    def test_validate_rejects_inverted_range(self):
        entry = weekly(Weekday.MONDAY, "17:00", "09:00")
        with pytest.raises(ValidationError):
            entry.validate()

    def test_validate_rejects_missing_recurrence(self):
        entry = ScheduleEntry(recurrence=None, start_time=time(9), end_time=time(17))
        with pytest.raises(ValidationError):
            entry.validate()

    def test_weekly_match(self):
        entry = weekly(Weekday.MONDAY, "09:00", "17:00")

        assert entry.matches(MONDAY_10AM)
        assert not entry.matches(MONDAY_6PM)
        assert not entry.matches(TUESDAY_10AM)

    def test_bounds_are_inclusive(self):
        entry = weekly(Weekday.MONDAY, "09:00", "17:00")

        assert entry.matches(datetime(2024, 1, 15, 9, 0, 0))
        assert entry.matches(datetime(2024, 1, 15, 17, 0, 0))
        assert not entry.matches(datetime(2024, 1, 15, 8, 59, 59))
        assert not entry.matches(datetime(2024, 1, 15, 17, 0, 1))

    def test_one_off_match(self):
        entry = ScheduleEntry(
            recurrence=OneOffRecurrence(on=date(2024, 1, 15)),
            start_time=time(9),
            end_time=time(17),
        )

        assert entry.matches(MONDAY_10AM)
        # Same weekday a week later is a different date
        assert not entry.matches(datetime(2024, 1, 22, 10, 0))

    def test_serialization(self):
        """Test to_dict/from_dict roundtrip."""
        entry = ScheduleEntry(
            recurrence=OneOffRecurrence(on=date(2026, 12, 24)),
            start_time=time(9, 30),
            end_time=time(12),
            keep_display_on=True,
            id=7,
        )

        data = entry.to_dict()
        restored = ScheduleEntry.from_dict(data)

        assert data["date"] == "2026-12-24"
        assert "day" not in data
        assert restored == entry

    def test_from_dict_rejects_garbage(self):
        with pytest.raises(ValidationError):
            ScheduleEntry.from_dict({"day": "monday", "start": "nine"})


class TestDesiredFlags:
    """Tests for the union of inhibition flags."""

    def test_no_entries(self):
        assert desired_flags([], MONDAY_10AM) == InhibitionFlags(False, False)

    def test_single_match_with_display(self):
        entries = [weekly(Weekday.MONDAY, "09:00", "17:00", display=True)]

        assert desired_flags(entries, MONDAY_10AM) == InhibitionFlags(True, True)
        assert desired_flags(entries, MONDAY_6PM) == InhibitionFlags(False, False)

    def test_union_not_last_write_wins(self):
        """Overlapping entries: display stays on if any matching entry asks for it."""
        with_display = weekly(Weekday.MONDAY, "08:00", "12:00", display=True)
        without_display = weekly(Weekday.MONDAY, "09:00", "17:00", display=False)

        assert desired_flags([with_display, without_display], MONDAY_10AM) == InhibitionFlags(True, True)
        assert desired_flags([without_display, with_display], MONDAY_10AM) == InhibitionFlags(True, True)

    def test_non_matching_display_entry_is_ignored(self):
        awake = weekly(Weekday.MONDAY, "09:00", "17:00")
        other_day = weekly(Weekday.TUESDAY, "09:00", "17:00", display=True)

        assert desired_flags([awake, other_day], MONDAY_10AM) == InhibitionFlags(True, False)

    def test_one_off_and_weekly_evaluated_independently(self):
        """Each entry matches on its own condition; either may trigger."""
        one_off = ScheduleEntry(
            recurrence=OneOffRecurrence(on=date(2024, 1, 16)),
            start_time=time(9),
            end_time=time(17),
        )
        monday = weekly(Weekday.MONDAY, "09:00", "17:00")

        assert desired_flags([one_off, monday], MONDAY_10AM).keep_awake
        assert desired_flags([one_off, monday], TUESDAY_10AM).keep_awake
        assert not desired_flags([one_off, monday], datetime(2024, 1, 17, 10)).keep_awake


class TestFormatting:
    """Tests for the descriptors returned by ListSchedules."""

    def test_weekly_descriptor(self):
        entry = weekly(Weekday.MONDAY, "09:00", "17:00", display=True)
        assert describe_entry(entry) == "Day: Monday, Time: 09:00 - 17:00, Display: On"

    def test_date_descriptor(self):
        entry = ScheduleEntry(
            recurrence=OneOffRecurrence(on=date(2026, 12, 24)),
            start_time=time(9, 15, 30),
            end_time=time(12),
        )
        assert describe_entry(entry) == "Date: 2026-12-24, Time: 09:15:30 - 12:00, Display: Off"

    def test_lines_carry_positions(self):
        entries = [
            weekly(Weekday.MONDAY, "09:00", "17:00"),
            weekly(Weekday.SUNDAY, "10:00", "11:00", display=True),
        ]

        lines = schedule_lines(enumerate(entries))

        assert lines == [
            "[0] Day: Monday, Time: 09:00 - 17:00, Display: Off",
            "[1] Day: Sunday, Time: 10:00 - 11:00, Display: On",
        ]

    def test_empty_table(self):
        assert schedule_lines([]) == [NO_SCHEDULES]

"""Schedule parsing, matching and formatting utilities.

Parses the textual day/date and time-range arguments accepted over the
control channel, computes the inhibition flags for a point in time, and
renders entries as the one-line descriptors shown to clients.
"""
import re
from datetime import date, datetime, time
from typing import Iterable

from ..errors import ValidationError
from .models import ScheduleEntry
from .types import (
    InhibitionFlags,
    OneOffRecurrence,
    Recurrence,
    Weekday,
    WeeklyRecurrence,
)

NO_SCHEDULES = "No schedules available."

_DAY_NAMES: dict[str, Weekday] = {}
for _day in Weekday:
    _DAY_NAMES[_day.value] = _day
    _DAY_NAMES[_day.value[:3]] = _day

_TIME_RANGE_RE = re.compile(r"^\s*(\d{1,2}:\d{2}(?::\d{2})?)\s*-\s*(\d{1,2}:\d{2}(?::\d{2})?)\s*$")


def parse_weekday(text: str) -> Weekday:
    """Parse 'mon'..'sun' or 'monday'..'sunday' (case-insensitive)."""
    day = _DAY_NAMES.get(text.strip().lower())
    if day is None:
        raise ValidationError(f"Invalid day of the week: {text}")
    return day


def parse_day_or_date(text: str) -> Recurrence:
    """Parse a weekday name or an ISO date (YYYY-MM-DD).

    Args:
        text: e.g. "Mon", "friday" or "2026-12-24"

    Returns:
        WeeklyRecurrence or OneOffRecurrence
    """
    if not text or not text.strip():
        raise ValidationError("A day of the week or a date is required")

    if text.strip().lower() in _DAY_NAMES:
        return WeeklyRecurrence(weekday=parse_weekday(text))

    try:
        return OneOffRecurrence(on=date.fromisoformat(text.strip()))
    except ValueError:
        raise ValidationError(
            f"Invalid day or date: {text!r} (expected e.g. 'mon', 'friday' or '2026-12-24')"
        ) from None


def parse_time(text: str) -> time:
    """Parse HH:MM or HH:MM:SS."""
    try:
        hour, minute, *rest = (int(part) for part in text.strip().split(":"))
        if len(rest) > 1:
            raise ValueError(text)
        return time(hour, minute, rest[0] if rest else 0)
    except ValueError:
        raise ValidationError(f"Invalid time of day: {text!r} (expected HH:MM)") from None


def parse_time_range(text: str) -> tuple[time, time]:
    """Parse 'HH:MM-HH:MM' into an inclusive (start, end) pair."""
    match = _TIME_RANGE_RE.match(text or "")
    if not match:
        raise ValidationError(f"Invalid time range: {text!r} (expected e.g. '09:00-17:00')")
    start, end = parse_time(match.group(1)), parse_time(match.group(2))
    if start > end:
        raise ValidationError(
            f"Invalid time range: {text!r} (start must not be after end; "
            "ranges do not wrap past midnight)"
        )
    return start, end


def build_entry(day_or_date: str, time_range: str, keep_display_on: bool = False) -> ScheduleEntry:
    """Build an unsaved entry from the textual control channel arguments."""
    start, end = parse_time_range(time_range)
    return ScheduleEntry(
        recurrence=parse_day_or_date(day_or_date),
        start_time=start,
        end_time=end,
        keep_display_on=keep_display_on,
    )


def desired_flags(entries: Iterable[ScheduleEntry], now: datetime) -> InhibitionFlags:
    """Union of the inhibition flags requested by every entry matching ``now``."""
    keep_awake = False
    keep_display_on = False
    for entry in entries:
        if entry.matches(now):
            keep_awake = True
            keep_display_on = keep_display_on or entry.keep_display_on
    return InhibitionFlags(keep_awake=keep_awake, keep_display_on=keep_display_on)


def format_time(value: time) -> str:
    if value.second:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


def describe_entry(entry: ScheduleEntry) -> str:
    """e.g. 'Day: Monday, Time: 09:00 - 17:00, Display: On'"""
    recurrence = entry.recurrence.describe() if entry.recurrence else "Day: -"
    display = "On" if entry.keep_display_on else "Off"
    return (
        f"{recurrence}, Time: {format_time(entry.start_time)} - "
        f"{format_time(entry.end_time)}, Display: {display}"
    )


def schedule_lines(indexed: Iterable[tuple[int, ScheduleEntry]]) -> list[str]:
    """Render a table listing, one line per entry.

    An empty table renders as a single informational line.
    """
    lines = [f"[{index}] {describe_entry(entry)}" for index, entry in indexed]
    return lines or [NO_SCHEDULES]

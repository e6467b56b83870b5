"""Sleep-prevention schedules: model, matching, persistence and evaluation."""
from .models import ScheduleEntry
from .types import (
    InhibitionFlags,
    OneOffRecurrence,
    Weekday,
    WeeklyRecurrence,
)

__all__ = [
    "ScheduleEntry",
    "InhibitionFlags",
    "OneOffRecurrence",
    "Weekday",
    "WeeklyRecurrence",
]

"""Core type definitions for sleep-prevention schedules.

This module defines:
- Weekdays and the recurrence variants (weekly day / one-off date)
- Inhibition flags applied to the power state driver
- Result types returned by schedule table mutations
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Literal


# ============== Weekdays ==============

class Weekday(str, Enum):
    """Day of the week, ordered like ``datetime.weekday()`` (Monday == 0)."""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def index(self) -> int:
        return list(Weekday).index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        return list(cls)[index]


# ============== Recurrence Types ==============

class RecurrenceKind(str, Enum):
    """Kind of recurrence."""
    WEEKLY = "day"      # Every week on a given weekday
    ONE_OFF = "date"    # A single calendar date


@dataclass(frozen=True)
class WeeklyRecurrence:
    """Recurs every week on the given weekday."""
    weekday: Weekday
    kind: Literal["day"] = "day"

    def occurs_on(self, day: date) -> bool:
        return day.weekday() == self.weekday.index

    def to_dict(self) -> dict[str, Any]:
        return {"day": self.weekday.value}

    def describe(self) -> str:
        return f"Day: {self.weekday.label}"


@dataclass(frozen=True)
class OneOffRecurrence:
    """Happens once, on a specific calendar date."""
    on: date
    kind: Literal["date"] = "date"

    def occurs_on(self, day: date) -> bool:
        return day == self.on

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.on.isoformat()}

    def describe(self) -> str:
        return f"Date: {self.on.isoformat()}"


# Union type for all recurrence types
Recurrence = WeeklyRecurrence | OneOffRecurrence


def recurrence_from_dict(data: dict[str, Any]) -> Recurrence:
    """Create a Recurrence from a persisted dictionary.

    Exactly one of ``day`` / ``date`` is expected. When both are present the
    date wins; callers that care about that case check for it beforehand.
    """
    if data.get("date"):
        value = data["date"]
        return OneOffRecurrence(on=value if isinstance(value, date) else date.fromisoformat(str(value)))
    if data.get("day"):
        return WeeklyRecurrence(weekday=Weekday(str(data["day"]).lower()))
    raise ValueError("Recurrence needs either 'day' or 'date'")


# ============== Inhibition Flags ==============

@dataclass(frozen=True)
class InhibitionFlags:
    """The pair of power-saving behaviors currently suppressed."""
    keep_awake: bool = False
    keep_display_on: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "keep_awake": self.keep_awake,
            "keep_display_on": self.keep_display_on,
        }

    def describe(self) -> str:
        if not self.keep_awake:
            return "sleep allowed"
        if self.keep_display_on:
            return "awake, display on"
        return "awake"


ALLOW_SLEEP = InhibitionFlags()


# ============== Result Types ==============

@dataclass
class MutationResult:
    """Result of adding or deleting a schedule.

    ``index`` is the entry's position at the time of the mutation.
    ``store_error`` is set when the change could not be persisted; the
    in-memory change still stands.
    """
    entry: Any
    index: int
    store_error: str | None = None

    @property
    def persisted(self) -> bool:
        return self.store_error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": self.entry.to_dict(),
            "index": self.index,
            "persisted": self.persisted,
            "store_error": self.store_error,
        }


@dataclass
class ServiceStatus:
    """Status of the running service."""
    running: bool
    schedules_total: int
    driver: str
    last_applied: InhibitionFlags | None = None
    last_tick_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "schedules_total": self.schedules_total,
            "driver": self.driver,
            "last_applied": self.last_applied.to_dict() if self.last_applied else None,
            "last_tick_at": self.last_tick_at,
        }

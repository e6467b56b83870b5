"""Data model for sleep-prevention schedule entries."""
import re
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any

from ..errors import ValidationError
from .types import (
    Recurrence,
    WeeklyRecurrence,
    OneOffRecurrence,
    recurrence_from_dict,
)


def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    # YAML 1.1 reads an unquoted 17:00 as the base-60 integer 1020
    match = _TIME_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"time of day must be a quoted 'HH:MM' string, got {value!r}")
    hour, minute, second = (int(g) if g else 0 for g in match.groups())
    return time(hour, minute, second)


@dataclass(frozen=True)
class ScheduleEntry:
    """One configured time window during which the host is kept awake.

    ``id`` is a durable key assigned by the schedule table when the entry is
    added; it never changes and is never reused. The entry's position in the
    table is separate and shifts when earlier entries are deleted.

    Both time bounds are inclusive and compared within one calendar day.
    """
    recurrence: Recurrence | None
    start_time: time
    end_time: time
    keep_display_on: bool = False
    id: int = 0
    created_at_ms: int = field(default_factory=_now_ms)

    def validate(self) -> None:
        """Raise ValidationError unless the entry can be accepted."""
        if not isinstance(self.recurrence, (WeeklyRecurrence, OneOffRecurrence)):
            raise ValidationError("A schedule needs either a day of the week or a specific date")
        if self.start_time > self.end_time:
            raise ValidationError(
                f"Start time {self.start_time.isoformat()} is after end time "
                f"{self.end_time.isoformat()}"
            )

    def matches(self, now: datetime) -> bool:
        """True if ``now`` falls on this entry's day and inside its time range."""
        if self.recurrence is None or not self.recurrence.occurs_on(now.date()):
            return False
        current = now.time().replace(tzinfo=None)
        return self.start_time <= current <= self.end_time

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML / JSON serialization."""
        d: dict[str, Any] = {"id": self.id}
        if self.recurrence is not None:
            d.update(self.recurrence.to_dict())
        d["start"] = self.start_time.isoformat()
        d["end"] = self.end_time.isoformat()
        d["keep_display_on"] = self.keep_display_on
        d["created_at_ms"] = self.created_at_ms
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleEntry":
        """Create from dictionary."""
        try:
            recurrence = recurrence_from_dict(data)
            start = _parse_time(data["start"])
            end = _parse_time(data["end"])
        except (KeyError, ValueError, TypeError) as e:
            raise ValidationError(f"Invalid schedule record {data!r}: {e}") from e

        return cls(
            recurrence=recurrence,
            start_time=start,
            end_time=end,
            keep_display_on=bool(data.get("keep_display_on", False)),
            id=int(data.get("id", 0)),
            created_at_ms=int(data.get("created_at_ms") or _now_ms()),
        )

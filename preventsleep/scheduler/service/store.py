"""YAML store for the persisted schedule list.

Layout of schedules.yaml:

    next_id: 3
    schedules:
      - id: 1
        day: monday
        start: '09:00:00'
        end: '17:00:00'
        keep_display_on: true
        created_at_ms: 1760000000000

The loader also accepts the older list-of-periods JSON layout
(``Day`` / ``SpecificDate`` / ``StartTime`` / ``EndTime`` / ``KeepDisplayOn``),
where ``Day`` may be a name or a number counted from Sunday == 0.
"""
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

import yaml
from loguru import logger

from ...errors import StoreError, ValidationError
from ..models import ScheduleEntry
from ..types import Weekday

logger = logger.bind(module="scheduler.store")

_HEADER = (
    "# PreventSleep schedules\n"
    "# Managed by the preventsleep service; edit only while the service is stopped.\n\n"
)

_LEGACY_DAYS = [
    Weekday.SUNDAY, Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY,
    Weekday.THURSDAY, Weekday.FRIDAY, Weekday.SATURDAY,
]


def _legacy_to_dict(d: dict[str, Any]) -> dict[str, Any]:
    """Convert an older PascalCase period record into the current layout."""
    converted: dict[str, Any] = {
        "start": d.get("StartTime"),
        "end": d.get("EndTime"),
        "keep_display_on": d.get("KeepDisplayOn", False),
    }
    day = d.get("Day")
    if isinstance(day, int) and 0 <= day < len(_LEGACY_DAYS):
        converted["day"] = _LEGACY_DAYS[day].value
    elif isinstance(day, str) and day:
        converted["day"] = str(day).lower()
    if d.get("SpecificDate"):
        if converted.get("day"):
            logger.warning(
                f"Period has both Day={day} and SpecificDate={d['SpecificDate']}; "
                "keeping the specific date"
            )
            converted.pop("day")
        converted["date"] = d["SpecificDate"]
    return converted


class ScheduleStore:
    """Whole-list YAML persistence for schedule entries.

    ``save`` always rewrites the full file through a temp file + rename.
    ``next_id`` is the next durable id to hand out; it is persisted so ids
    are never reused across restarts.
    """

    def __init__(self, path: str | Path):
        """Initialize store.

        Args:
            path: Path of the YAML file
        """
        self.path = Path(path).expanduser()
        self.next_id = 1

    def load(self) -> list[ScheduleEntry]:
        """Load the schedule list. Missing file means no schedules."""
        if not self.path.exists():
            logger.info(f"No schedule file at {self.path}, starting empty")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"Failed to read {self.path}: {e}") from e

        if data is None:
            return []

        if isinstance(data, list):
            records = [_legacy_to_dict(d) if isinstance(d, dict) else d for d in data]
            stored_next_id = 0
        elif isinstance(data, dict):
            records = data.get("schedules") or []
            stored_next_id = int(data.get("next_id") or 0)
        else:
            raise StoreError(f"Unrecognized schedule file layout in {self.path}")

        entries = []
        for position, record in enumerate(records):
            if not isinstance(record, dict):
                logger.warning(f"Skipping schedule #{position} in {self.path}: not a mapping")
                continue
            try:
                entry = ScheduleEntry.from_dict(record)
                entry.validate()
            except ValidationError as e:
                logger.warning(f"Skipping schedule #{position} in {self.path}: {e}")
                continue
            entries.append(entry)

        entries = self._assign_missing_ids(entries)
        highest = max((e.id for e in entries), default=0)
        self.next_id = max(stored_next_id, highest + 1, 1)

        logger.info(f"Loaded {len(entries)} schedules from {self.path}")
        return entries

    def save(self, entries: Iterable[ScheduleEntry], next_id: int | None = None) -> None:
        """Overwrite the schedule file with ``entries`` (atomic)."""
        if next_id is not None:
            self.next_id = next_id
        data = {
            "next_id": self.next_id,
            "schedules": [entry.to_dict() for entry in entries],
        }

        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(_HEADER)
                yaml.safe_dump(
                    data,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )
            temp_path.replace(self.path)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"Failed to write {self.path}: {e}") from e

        logger.debug(f"Saved {len(data['schedules'])} schedules to {self.path}")

    @staticmethod
    def _assign_missing_ids(entries: list[ScheduleEntry]) -> list[ScheduleEntry]:
        """Give records without a usable id (legacy files) fresh unique ids."""
        seen: set[int] = set()
        next_free = max((e.id for e in entries), default=0) + 1
        result = []
        for entry in entries:
            if entry.id <= 0 or entry.id in seen:
                entry = replace(entry, id=next_free)
                next_free += 1
            seen.add(entry.id)
            result.append(entry)
        return result

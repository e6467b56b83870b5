"""Remote operations exposed over the control channel.

Methods: AddSchedule, ListSchedules and
DeleteSchedule (positional index), plus DeleteScheduleById and GetStatus.
"""
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt

from ..scheduler.schedule import build_entry, describe_entry, schedule_lines
from ..scheduler.service import EvaluatorLoop, ScheduleTable
from ..scheduler.types import MutationResult, ServiceStatus
from .rpc import RpcDispatcher

logger = logger.bind(module="services.control")


class AddScheduleParams(BaseModel):
    """AddSchedule(dayOrDateRange, timeRange, keepDisplayOn)"""
    model_config = ConfigDict(populate_by_name=True)

    day_or_date: str = Field(alias="dayOrDateRange")
    time_range: str = Field(alias="timeRange")
    keep_display_on: StrictBool = Field(default=False, alias="keepDisplayOn")


class DeleteScheduleParams(BaseModel):
    """DeleteSchedule(id) / DeleteScheduleById(id)"""
    model_config = ConfigDict(populate_by_name=True)

    id: StrictInt


def _with_store_warning(message: str, result: MutationResult) -> str:
    if result.persisted:
        return message
    return f"{message} (warning: not persisted, will be lost on restart: {result.store_error})"


class ScheduleControlService:
    """Per-service handlers for the control channel.

    Holds no schedule state of its own; every call goes to the shared
    schedule table.
    """

    def __init__(self, table: ScheduleTable, evaluator: Optional[EvaluatorLoop] = None):
        self.table = table
        self.evaluator = evaluator

    def register(self, dispatcher: RpcDispatcher) -> RpcDispatcher:
        """Register every remote operation on ``dispatcher``."""
        dispatcher.register("AddSchedule", self.add_schedule, AddScheduleParams)
        dispatcher.register("ListSchedules", self.list_schedules)
        dispatcher.register("DeleteSchedule", self.delete_schedule, DeleteScheduleParams)
        dispatcher.register("DeleteScheduleById", self.delete_schedule_by_id, DeleteScheduleParams)
        dispatcher.register("GetStatus", self.get_status)
        return dispatcher

    async def add_schedule(self, day_or_date: str, time_range: str, keep_display_on: bool = False) -> str:
        """Parse and add a schedule; returns an acknowledgement line."""
        entry = build_entry(day_or_date, time_range, keep_display_on)
        result = await self.table.add(entry)
        message = f"Schedule added: [{result.index}] {describe_entry(result.entry)} (id {result.entry.id})"
        return _with_store_warning(message, result)

    async def list_schedules(self) -> List[str]:
        """One descriptor line per schedule, or a single 'no schedules' line."""
        lines = schedule_lines(self.table.list())
        logger.info(f"Schedules listed ({len(self.table)} entries)")
        return lines

    async def delete_schedule(self, id: int) -> str:  # noqa: A002 - wire name
        """Delete by current position."""
        result = await self.table.delete(id)
        message = f"Deleted schedule [{result.index}]: {describe_entry(result.entry)}"
        return _with_store_warning(message, result)

    async def delete_schedule_by_id(self, id: int) -> str:  # noqa: A002 - wire name
        """Delete by durable id."""
        result = await self.table.delete_by_id(id)
        message = (
            f"Deleted schedule with id {result.entry.id} "
            f"(was [{result.index}]): {describe_entry(result.entry)}"
        )
        return _with_store_warning(message, result)

    async def get_status(self) -> Dict[str, Any]:
        evaluator = self.evaluator
        status = ServiceStatus(
            running=bool(evaluator and evaluator.running),
            schedules_total=len(self.table),
            driver=evaluator.driver.name if evaluator else "none",
            last_applied=evaluator.last_applied if evaluator else None,
            last_tick_at=(
                evaluator.last_tick_at.isoformat(timespec="seconds")
                if evaluator and evaluator.last_tick_at else None
            ),
        )
        return status.to_dict()

"""Evaluator loop: re-checks the schedule table on a fixed period and drives
the power state driver.

The desired flags are applied on every tick, including (False, False) when
nothing matches, so inhibition lapses as soon as a window closes.
"""
import asyncio
from datetime import datetime
from typing import Callable, Protocol

from loguru import logger

from ...errors import DriverError
from ..schedule import desired_flags
from ..types import ALLOW_SLEEP, InhibitionFlags
from .table import ScheduleTable

logger = logger.bind(module="scheduler.timer")

DEFAULT_TICK_SECONDS = 60.0
DEFAULT_RETRY_DELAY_SECONDS = 1.0


class PowerStateDriver(Protocol):
    """Protocol for the OS primitive that inhibits sleep / display off."""

    name: str

    def apply(self, keep_awake: bool, keep_display_on: bool) -> None:
        """Apply the flags. Idempotent. Raises DriverError on failure."""
        ...


class EvaluatorLoop:
    """Periodic schedule check: Idle -> Evaluating -> Idle."""

    def __init__(
        self,
        table: ScheduleTable,
        driver: PowerStateDriver,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the evaluator.

        Args:
            table: Shared schedule table (read through snapshots only)
            driver: Power state driver to apply flags to
            tick_seconds: Period between successful ticks
            retry_delay_seconds: Backoff after a failed tick
            clock: Returns the current local time
        """
        self.table = table
        self.driver = driver
        self.tick_seconds = tick_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.clock = clock

        self.running = False
        self.last_applied: InhibitionFlags | None = None
        self.last_tick_at: datetime | None = None

    async def tick(self) -> InhibitionFlags:
        """Evaluate once and apply the resulting flags.

        Returns:
            The flags that were applied

        Raises:
            DriverError: if the driver failed (the loop logs and retries)
        """
        entries = self.table.snapshot_for_evaluation()
        now = self.clock()
        flags = desired_flags(entries, now)

        await asyncio.to_thread(self.driver.apply, flags.keep_awake, flags.keep_display_on)

        if flags != self.last_applied:
            logger.info(f"Power state: {flags.describe()} ({len(entries)} schedules checked)")
        else:
            logger.debug(f"Tick at {now:%H:%M:%S}: {flags.describe()}")
        self.last_applied = flags
        self.last_tick_at = now
        return flags

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until ``stop_event`` is set, then release the inhibition."""
        self.running = True
        logger.info(
            f"Evaluator started: every {self.tick_seconds:g}s via {self.driver.name} driver"
        )
        try:
            while not stop_event.is_set():
                try:
                    await self.tick()
                    delay = self.tick_seconds
                except DriverError as e:
                    logger.error(f"Failed to apply power state: {e}")
                    delay = self.retry_delay_seconds
                except Exception as e:
                    logger.exception(f"Error in schedule checker: {e}")
                    delay = self.retry_delay_seconds

                if await self._wait(stop_event, delay):
                    break
        finally:
            await self._release()
            self.running = False
            logger.info("Evaluator stopped")

    async def _release(self) -> None:
        """Allow sleep again on the way out."""
        if self.last_applied is None or self.last_applied == ALLOW_SLEEP:
            return
        try:
            await asyncio.to_thread(self.driver.apply, False, False)
            self.last_applied = ALLOW_SLEEP
        except DriverError as e:
            logger.error(f"Failed to release power state on shutdown: {e}")

    @staticmethod
    async def _wait(stop_event: asyncio.Event, delay: float) -> bool:
        """Sleep for ``delay`` seconds or until stopped. True if stopped."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

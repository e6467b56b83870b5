"""Tests for the evaluator loop."""
import asyncio
import pytest
from datetime import datetime
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from preventsleep.errors import DriverError
from preventsleep.power import NullDriver
from preventsleep.scheduler.schedule import build_entry
from preventsleep.scheduler.service import EvaluatorLoop, ScheduleTable
from preventsleep.scheduler.types import InhibitionFlags

MONDAY_10AM = datetime(2024, 1, 15, 10, 0)
MONDAY_6PM = datetime(2024, 1, 15, 18, 0)


class MemoryStore:
    next_id = 1

    def load(self):
        return []

    def save(self, entries, next_id=None):
        pass


class FlakyDriver(NullDriver):
    """Fails the first ``failures`` calls."""

    name = "flaky"

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def apply(self, keep_awake, keep_display_on):
        self.calls += 1
        if self.calls <= self.failures:
            raise DriverError("SetThreadExecutionState failed")
        super().apply(keep_awake, keep_display_on)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def table():
    return ScheduleTable(MemoryStore())


@pytest.fixture
def driver():
    return NullDriver()


@pytest.fixture
def clock():
    return Clock(MONDAY_10AM)


@pytest.fixture
def evaluator(table, driver, clock):
    return EvaluatorLoop(table, driver, tick_seconds=3600, retry_delay_seconds=0.01, clock=clock)


class TestTick:
    """Tests for a single evaluation."""

    @pytest.mark.asyncio
    async def test_match_then_lapse(self, evaluator, table, driver, clock):
        """Monday 09:00-17:00 with display: on at 10:00, released at 18:00."""
        await table.add(build_entry("monday", "09:00-17:00", True))

        assert await evaluator.tick() == InhibitionFlags(True, True)

        clock.now = MONDAY_6PM
        assert await evaluator.tick() == InhibitionFlags(False, False)
        assert driver.history == [InhibitionFlags(True, True), InhibitionFlags(False, False)]

    @pytest.mark.asyncio
    async def test_applies_every_tick_even_without_match(self, evaluator, driver):
        await evaluator.tick()
        await evaluator.tick()

        assert driver.history == [InhibitionFlags(False, False)] * 2

    @pytest.mark.asyncio
    async def test_overlapping_entries_union(self, evaluator, table):
        await table.add(build_entry("mon", "09:00-17:00", False))
        await table.add(build_entry("mon", "08:00-11:00", True))

        assert await evaluator.tick() == InhibitionFlags(True, True)

    @pytest.mark.asyncio
    async def test_deleting_only_entry_releases(self, evaluator, table, driver):
        await table.add(build_entry("mon", "09:00-17:00", True))
        await evaluator.tick()

        await table.delete(0)
        await evaluator.tick()
        await evaluator.tick()

        assert driver.history[-2:] == [InhibitionFlags(False, False)] * 2

    @pytest.mark.asyncio
    async def test_tick_records_state(self, evaluator, table):
        await table.add(build_entry("mon", "09:00-17:00"))
        await evaluator.tick()

        assert evaluator.last_applied == InhibitionFlags(True, False)
        assert evaluator.last_tick_at == MONDAY_10AM

    @pytest.mark.asyncio
    async def test_driver_error_propagates_from_tick(self, table, clock):
        evaluator = EvaluatorLoop(table, FlakyDriver(failures=1), clock=clock)
        with pytest.raises(DriverError):
            await evaluator.tick()
        assert evaluator.last_applied is None


class TestRunLoop:
    """Tests for the ticking loop and its cancellation."""

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate_and_stop_is_prompt(self, evaluator, driver):
        stop = asyncio.Event()
        task = asyncio.create_task(evaluator.run(stop))

        await wait_until(lambda: driver.history)
        assert evaluator.running

        stop.set()
        # tick_seconds is an hour; stopping must not wait for it
        await asyncio.wait_for(task, timeout=1.0)
        assert not evaluator.running

    @pytest.mark.asyncio
    async def test_driver_failure_is_retried(self, table, clock):
        driver = FlakyDriver(failures=3)
        evaluator = EvaluatorLoop(table, driver, tick_seconds=3600, retry_delay_seconds=0.01, clock=clock)
        stop = asyncio.Event()
        task = asyncio.create_task(evaluator.run(stop))

        await wait_until(lambda: driver.history)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert driver.calls == 4
        assert evaluator.last_applied == InhibitionFlags(False, False)

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_kill_loop(self, evaluator, table, driver, clock):
        calls = {"n": 0}
        real_snapshot = table.snapshot_for_evaluation

        def broken_snapshot():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("boom")
            return real_snapshot()

        table.snapshot_for_evaluation = broken_snapshot
        stop = asyncio.Event()
        task = asyncio.create_task(evaluator.run(stop))

        await wait_until(lambda: driver.history)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert calls["n"] >= 2

    @pytest.mark.asyncio
    async def test_stop_releases_inhibition(self, evaluator, table, driver):
        await table.add(build_entry("mon", "09:00-17:00", True))
        stop = asyncio.Event()
        task = asyncio.create_task(evaluator.run(stop))

        await wait_until(lambda: driver.history)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert driver.history == [InhibitionFlags(True, True), InhibitionFlags(False, False)]

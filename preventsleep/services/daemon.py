"""Service lifecycle: runs the control listener and the evaluator together."""
import asyncio
import signal
from typing import Optional

from loguru import logger

from ..config import Settings, settings as default_settings
from ..power import create_driver
from ..scheduler.service import EvaluatorLoop, PowerStateDriver, ScheduleStore, ScheduleTable
from .control_service import ScheduleControlService
from .listener import ControlListener
from .rpc import RpcDispatcher

logger = logger.bind(module="services.daemon")

STARTUP_TIMEOUT_SECONDS = 10.0


class PreventSleepService:
    """Sleep-prevention service.

    ``start()`` loads the schedule table and launches the listener and the
    evaluator as two tasks sharing that table. ``stop()`` signals both and
    waits until they have exited; no driver calls or store writes happen
    after it returns.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        driver: Optional[PowerStateDriver] = None,
        store: Optional[ScheduleStore] = None,
    ):
        self.config = config or default_settings
        self.driver = driver or create_driver(self.config.driver)
        self.store = store or ScheduleStore(self.config.schedules_path)

        self.table = ScheduleTable(self.store)
        self.evaluator = EvaluatorLoop(
            self.table,
            self.driver,
            tick_seconds=self.config.tick_seconds,
            retry_delay_seconds=self.config.retry_delay_seconds,
        )
        self.dispatcher = ScheduleControlService(self.table, self.evaluator).register(RpcDispatcher())
        self.listener = ControlListener(
            self.dispatcher,
            socket_path=self.config.control_socket,
            host=self.config.host,
            port=self.config.port,
            retry_delay_seconds=self.config.retry_delay_seconds,
        )

        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Load schedules, then start the listener and evaluator."""
        if self.is_running:
            logger.warning("Service already running")
            return

        logger.info("Service is starting...")
        count = await self.table.load()
        logger.info(f"Loaded {count} schedules")

        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self.listener.run(self._stop_event), name="control-listener"),
            asyncio.create_task(self.evaluator.run(self._stop_event), name="evaluator"),
        ]

        try:
            await asyncio.wait_for(self.listener.ready.wait(), timeout=STARTUP_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(
                f"Control listener not ready after {STARTUP_TIMEOUT_SECONDS:g}s; it keeps retrying"
            )
        logger.info("Service started successfully")

    async def stop(self) -> None:
        """Signal shutdown and wait for the listener and evaluator to exit."""
        if not self.is_running:
            return

        logger.info("Service is stopping...")
        assert self._stop_event is not None
        self._stop_event.set()

        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, BaseException):
                logger.error(f"Error stopping {task.get_name()}: {result!r}")
        self._tasks = []

        close = getattr(self.driver, "close", None)
        if close is not None:
            try:
                await asyncio.to_thread(close)
            except Exception as e:
                logger.error(f"Error releasing power driver: {e}")
        logger.info("Service stopped successfully")

    async def run_forever(self) -> None:
        """Start, wait for SIGINT/SIGTERM, then stop."""
        loop = asyncio.get_running_loop()
        shutdown = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown.set)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no signal handler support
                pass

        await self.start()
        try:
            await shutdown.wait()
        finally:
            await self.stop()

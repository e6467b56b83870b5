"""Power state drivers: the OS primitives that keep the host awake.

Every driver exposes ``apply(keep_awake, keep_display_on)``. Applying the
flags that are already in effect is a no-op; applying (False, False)
releases any inhibition held by the driver.
"""
import shutil
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from loguru import logger

from ..errors import DriverError
from ..scheduler.types import ALLOW_SLEEP, InhibitionFlags

logger = logger.bind(module="power.drivers")


class NullDriver:
    """Records applied flags without touching the OS.

    Used on unsupported platforms and in tests.
    """

    name = "null"

    def __init__(self):
        self.current = ALLOW_SLEEP
        self.history: list[InhibitionFlags] = []

    def apply(self, keep_awake: bool, keep_display_on: bool) -> None:
        self.current = InhibitionFlags(keep_awake, keep_awake and keep_display_on)
        self.history.append(self.current)

    def close(self) -> None:
        self.apply(False, False)


class WindowsDriver:
    """SetThreadExecutionState from kernel32.

    The execution state belongs to the calling thread, so every call is
    made on one dedicated worker thread.
    """

    name = "windows"

    ES_SYSTEM_REQUIRED = 0x00000001
    ES_DISPLAY_REQUIRED = 0x00000002
    ES_CONTINUOUS = 0x80000000

    def __init__(self):
        try:
            import ctypes
            self._kernel32 = ctypes.windll.kernel32
        except (ImportError, AttributeError) as e:
            raise DriverError(f"SetThreadExecutionState is not available: {e}") from e
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="execution-state")
        self.current: Optional[InhibitionFlags] = None

    def apply(self, keep_awake: bool, keep_display_on: bool) -> None:
        flags = InhibitionFlags(keep_awake, keep_awake and keep_display_on)
        if flags == self.current:
            return

        state = self.ES_CONTINUOUS
        if flags.keep_awake:
            state |= self.ES_SYSTEM_REQUIRED
        if flags.keep_display_on:
            state |= self.ES_DISPLAY_REQUIRED

        previous = self._executor.submit(self._kernel32.SetThreadExecutionState, state).result()
        if previous == 0:
            raise DriverError(f"SetThreadExecutionState(0x{state:08X}) failed")
        self.current = flags

    def close(self) -> None:
        try:
            self.apply(False, False)
        finally:
            self._executor.shutdown(wait=True)


class _InhibitorProcessDriver:
    """Holds an inhibition by keeping a helper child process alive.

    Subclasses provide the command line for the requested flags; changing
    flags replaces the child, releasing terminates it.
    """

    name = "process"
    executable = ""

    def __init__(self):
        if shutil.which(self.executable) is None:
            raise DriverError(f"{self.executable} not found on PATH")
        self._process: Optional[subprocess.Popen] = None
        self.current = ALLOW_SLEEP

    def _command(self, keep_display_on: bool) -> list[str]:
        raise NotImplementedError

    def apply(self, keep_awake: bool, keep_display_on: bool) -> None:
        flags = InhibitionFlags(keep_awake, keep_awake and keep_display_on)
        alive = self._process is not None and self._process.poll() is None

        if flags == self.current and (alive or not flags.keep_awake):
            return
        if self._process is not None and not alive:
            logger.warning(f"{self.executable} exited unexpectedly (code {self._process.returncode})")

        self._terminate()
        if flags.keep_awake:
            command = self._command(flags.keep_display_on)
            try:
                self._process = subprocess.Popen(
                    command,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                self.current = ALLOW_SLEEP
                raise DriverError(f"Failed to start {self.executable}: {e}") from e
            logger.debug(f"Started {' '.join(command)} (pid {self._process.pid})")
        self.current = flags

    def _terminate(self) -> None:
        if self._process is None:
            return
        try:
            self._process.terminate()
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning(f"{self.executable} did not terminate, killing it")
            self._process.kill()
            self._process.wait()
        finally:
            self._process = None

    def close(self) -> None:
        self.apply(False, False)


class SystemdInhibitDriver(_InhibitorProcessDriver):
    """Linux: ``systemd-inhibit --mode=block sleep infinity``."""

    name = "systemd"
    executable = "systemd-inhibit"

    def _command(self, keep_display_on: bool) -> list[str]:
        what = "sleep:idle" if keep_display_on else "sleep"
        return [
            "systemd-inhibit",
            f"--what={what}",
            "--who=preventsleep",
            "--why=Scheduled sleep prevention",
            "--mode=block",
            "sleep", "infinity",
        ]


class CaffeinateDriver(_InhibitorProcessDriver):
    """macOS: ``caffeinate -i`` (plus ``-d`` to keep the display on)."""

    name = "caffeinate"
    executable = "caffeinate"

    def _command(self, keep_display_on: bool) -> list[str]:
        return ["caffeinate", "-i", "-d"] if keep_display_on else ["caffeinate", "-i"]


_DRIVERS = {
    "null": NullDriver,
    "windows": WindowsDriver,
    "systemd": SystemdInhibitDriver,
    "caffeinate": CaffeinateDriver,
}


def create_driver(name: str = "auto"):
    """Create a driver by name; ``auto`` picks the one for this platform.

    Raises:
        DriverError: if a named driver is unknown or unavailable here
    """
    name = (name or "auto").lower()
    if name != "auto":
        if name not in _DRIVERS:
            raise DriverError(f"Unknown power driver: {name} (choose from {', '.join(_DRIVERS)})")
        return _DRIVERS[name]()

    if sys.platform == "win32":
        return WindowsDriver()
    if sys.platform == "darwin" and shutil.which("caffeinate"):
        return CaffeinateDriver()
    if sys.platform.startswith("linux") and shutil.which("systemd-inhibit"):
        return SystemdInhibitDriver()

    logger.warning(f"No sleep inhibition method available on {sys.platform}; using null driver")
    return NullDriver()

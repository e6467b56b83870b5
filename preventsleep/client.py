"""Control channel client used by the CLI."""
import asyncio
import itertools
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from websockets.asyncio.client import ClientConnection, connect, unix_connect
from websockets.exceptions import ConnectionClosed

from .errors import PreventSleepError, SessionError, error_from_code
from .services.listener import unix_sockets_available


class ControlClient:
    """JSON-RPC client for a running service.

    Usage::

        async with ControlClient(socket_path) as client:
            print(await client.list_schedules())
    """

    def __init__(
        self,
        socket_path: Optional[Path] = None,
        host: str = "127.0.0.1",
        port: int = 8790,
        timeout: float = 10.0,
    ):
        self.socket_path = socket_path if unix_sockets_available() else None
        self.host = host
        self.port = port
        self.timeout = timeout
        self._connection: Optional[ClientConnection] = None
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def connect(self) -> "ControlClient":
        try:
            if self.socket_path is not None:
                self._connection = await unix_connect(str(self.socket_path))
            else:
                self._connection = await connect(f"ws://{self.host}:{self.port}/")
        except OSError as e:
            raise SessionError(
                f"Cannot reach the preventsleep service ({e}); is it running?"
            ) from e
        return self

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> "ControlClient":
        return await self.connect()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def call(self, method: str, *params: Any) -> Any:
        """Invoke a remote operation and return its result.

        Raises:
            PreventSleepError: the matching subclass for a typed failure
        """
        if self._connection is None:
            raise SessionError("Client is not connected")

        request_id = next(self._ids)
        request = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": list(params)}

        # One outstanding call at a time on this connection
        async with self._lock:
            try:
                await self._connection.send(json.dumps(request))
                raw = await asyncio.wait_for(self._connection.recv(), timeout=self.timeout)
            except ConnectionClosed as e:
                raise SessionError(f"Connection to service closed: {e}") from e
            except asyncio.TimeoutError:
                raise SessionError(f"{method} timed out after {self.timeout:g}s") from None

        reply = json.loads(raw)
        if reply.get("id") != request_id:
            raise SessionError(f"Mismatched reply id {reply.get('id')!r} for request {request_id}")
        if "error" in reply:
            error = reply["error"]
            raise error_from_code(error.get("code", PreventSleepError.code), error.get("message", ""))
        return reply.get("result")

    async def add_schedule(self, day_or_date: str, time_range: str, keep_display_on: bool = False) -> str:
        return await self.call("AddSchedule", day_or_date, time_range, keep_display_on)

    async def list_schedules(self) -> List[str]:
        return await self.call("ListSchedules")

    async def delete_schedule(self, index: int) -> str:
        return await self.call("DeleteSchedule", index)

    async def delete_schedule_by_id(self, entry_id: int) -> str:
        return await self.call("DeleteScheduleById", entry_id)

    async def get_status(self) -> Dict[str, Any]:
        return await self.call("GetStatus")

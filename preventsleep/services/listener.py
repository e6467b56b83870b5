"""Control listener: serves JSON-RPC sessions over a local WebSocket.

Binds a Unix domain socket where the platform has one, loopback TCP
otherwise. Every connection is a session running in its own task, and every
request within a session is dispatched in its own task so a client may
pipeline calls. A failing session never affects the others.
"""
import asyncio
import itertools
import json
import socket
from pathlib import Path
from typing import Optional, Set

from loguru import logger
from websockets.asyncio.server import Server, ServerConnection, serve, unix_serve
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from ..errors import SessionError
from .rpc import RpcDispatcher, internal_error

logger = logger.bind(module="services.listener")

DEFAULT_RETRY_DELAY_SECONDS = 1.0


def unix_sockets_available() -> bool:
    return hasattr(socket, "AF_UNIX")


class ControlListener:
    """Accepts client sessions and hands their requests to the dispatcher."""

    def __init__(
        self,
        dispatcher: RpcDispatcher,
        socket_path: Optional[Path] = None,
        host: str = "127.0.0.1",
        port: int = 8790,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ):
        """
        Args:
            dispatcher: Routes requests to remote operations
            socket_path: Unix socket to bind (None: use host/port)
            host: Loopback address for the TCP fallback
            port: Port for the TCP fallback
            retry_delay_seconds: Delay before re-binding after a listener error
        """
        self.dispatcher = dispatcher
        self.socket_path = socket_path if unix_sockets_available() else None
        self.host = host
        self.port = port
        self.retry_delay_seconds = retry_delay_seconds

        self.ready = asyncio.Event()
        self._server: Optional[Server] = None
        self._session_ids = itertools.count(1)
        self.active_sessions = 0

    @property
    def address(self) -> str:
        if self.socket_path is not None:
            return f"unix:{self.socket_path}"
        return f"ws://{self.host}:{self.port}"

    async def run(self, stop_event: asyncio.Event) -> None:
        """Serve until ``stop_event`` is set, re-binding after listener errors."""
        while not stop_event.is_set():
            try:
                self._server = await self._bind()
            except OSError as e:
                logger.error(f"Error in control listener on {self.address}: {e}")
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.retry_delay_seconds)
                except asyncio.TimeoutError:
                    pass
                continue

            logger.info(f"Control listener accepting connections on {self.address}")
            self.ready.set()
            try:
                await stop_event.wait()
            finally:
                await self._shutdown()
        logger.info("Control listener stopped")

    async def _bind(self) -> Server:
        if self.socket_path is not None:
            self._remove_stale_socket()
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
            return await unix_serve(self._handle_session, str(self.socket_path))
        return await serve(self._handle_session, self.host, self.port)

    def _remove_stale_socket(self) -> None:
        path = self.socket_path
        if path is None or not path.exists():
            return
        if not path.is_socket():
            raise OSError(f"{path} exists and is not a socket")
        path.unlink()

    async def _shutdown(self) -> None:
        """Close the server and every open session; waits for their handlers."""
        server, self._server = self._server, None
        self.ready.clear()
        if server is not None:
            server.close()
            await server.wait_closed()
        if self.socket_path is not None:
            self.socket_path.unlink(missing_ok=True)

    async def _handle_session(self, connection: ServerConnection) -> None:
        """Serve one client connection until it closes."""
        session_id = next(self._session_ids)
        in_flight: Set[asyncio.Task] = set()
        self.active_sessions += 1
        logger.debug(f"Session {session_id} opened")

        try:
            async for frame in connection:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                task = asyncio.create_task(self._handle_request(connection, session_id, frame))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
        except ConnectionClosedError as e:
            error = SessionError(f"Session {session_id} dropped: {e}")
            logger.warning(str(error))
        finally:
            # In-flight calls run to completion even if their reply can no
            # longer be delivered.
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            self.active_sessions -= 1
            logger.debug(f"Session {session_id} closed")

    async def _handle_request(self, connection: ServerConnection, session_id: int, frame: str) -> None:
        try:
            reply = await self.dispatcher.handle(frame)
        except Exception as e:
            logger.exception(f"Session {session_id}: unhandled error for request: {e}")
            reply = json.dumps(internal_error(f"Internal error: {e}"))
        if reply is None:
            return
        try:
            await connection.send(reply)
        except ConnectionClosed:
            logger.warning(f"Session {session_id}: client went away before the reply was sent")

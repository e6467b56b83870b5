"""Minimal JSON-RPC 2.0 dispatcher for the control channel.

Each WebSocket text frame carries one request object (or a batch array);
the reply frame carries the matching response. Notifications (requests
without an ``id``) are executed but get no reply.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as ParamsError

from ..errors import PreventSleepError

logger = logger.bind(module="services.rpc")

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32000

Handler = Callable[..., Awaitable[Any]]


@dataclass
class RpcMethod:
    """A registered remote operation"""
    name: str
    handler: Handler
    params: Optional[Type[BaseModel]] = None


def _error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def internal_error(message: str, request_id: Any = None) -> Dict[str, Any]:
    return _error(request_id, INTERNAL_ERROR, message)


def _result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


class RpcDispatcher:
    """Maps JSON-RPC method names onto async handlers.

    Params may be given by position (in the params model's field order) or
    by name (field name or alias).
    """

    def __init__(self):
        self.methods: Dict[str, RpcMethod] = {}

    def register(self, name: str, handler: Handler, params: Optional[Type[BaseModel]] = None):
        """Register a remote operation.

        Args:
            name: Method name on the wire
            handler: Coroutine function, called with the validated params
            params: Pydantic model describing the params (None: no params)
        """
        self.methods[name] = RpcMethod(name=name, handler=handler, params=params)

    async def handle(self, raw: str) -> Optional[str]:
        """Handle one incoming frame and return the reply frame, if any."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError, RecursionError) as e:
            logger.warning(f"Unparseable request: {e}")
            return json.dumps(_error(None, PARSE_ERROR, f"Parse error: {e}"))

        if isinstance(message, list):
            if not message:
                return json.dumps(_error(None, INVALID_REQUEST, "Empty batch"))
            replies = await asyncio.gather(*(self.dispatch(m) for m in message))
            replies = [r for r in replies if r is not None]
            return json.dumps(replies) if replies else None

        reply = await self.dispatch(message)
        return json.dumps(reply) if reply is not None else None

    async def dispatch(self, message: Any) -> Optional[Dict[str, Any]]:
        """Run one request object. Returns None for notifications."""
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0" \
                or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return _error(request_id, INVALID_REQUEST, "Invalid request")

        request_id = message.get("id")
        is_notification = "id" not in message
        name = message["method"]

        method = self.methods.get(name)
        if method is None:
            logger.warning(f"Unknown method: {name}")
            reply = _error(request_id, METHOD_NOT_FOUND, f"Method not found: {name}")
            return None if is_notification else reply

        try:
            kwargs = self._bind_params(method, message.get("params"))
        except ParamsError as e:
            logger.warning(f"{name} rejected: invalid params: {e.errors(include_url=False)}")
            reply = _error(request_id, INVALID_PARAMS, f"Invalid params: {e}")
            return None if is_notification else reply
        except TypeError as e:
            logger.warning(f"{name} rejected: {e}")
            reply = _error(request_id, INVALID_PARAMS, str(e))
            return None if is_notification else reply

        try:
            result = await method.handler(**kwargs)
            reply = _result(request_id, result)
        except PreventSleepError as e:
            logger.warning(f"Error in {name}: {e}")
            reply = _error(request_id, e.code, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in {name}: {e}")
            reply = _error(request_id, INTERNAL_ERROR, f"Internal error: {e}")

        return None if is_notification else reply

    @staticmethod
    def _bind_params(method: RpcMethod, params: Any) -> Dict[str, Any]:
        if method.params is None:
            if params not in (None, [], {}):
                raise TypeError(f"{method.name} takes no params")
            return {}

        if params is None:
            params = {}
        if isinstance(params, list):
            fields = list(method.params.model_fields)
            if len(params) > len(fields):
                raise TypeError(
                    f"{method.name} takes at most {len(fields)} params ({len(params)} given)"
                )
            params = dict(zip(fields, params))
        elif not isinstance(params, dict):
            raise TypeError("params must be an array or an object")

        model = method.params.model_validate(params)
        return model.model_dump()

    def names(self) -> List[str]:
        return sorted(self.methods)

"""Error taxonomy shared by the service, the control channel and the client.

Each error carries a JSON-RPC ``code`` so the control listener can report it
to clients as a typed failure, and the client can raise it again on its side.
"""


class PreventSleepError(Exception):
    """Base class for all service errors."""

    code: int = -32000


class ValidationError(PreventSleepError):
    """Malformed or inconsistent schedule input. Raised before any mutation."""

    code = -32001


class NotFoundError(PreventSleepError):
    """Schedule index or id does not exist."""

    code = -32002


class StoreError(PreventSleepError):
    """Persistence I/O failure.

    The in-memory mutation still stands for the current process lifetime.
    """

    code = -32003


class DriverError(PreventSleepError):
    """The power state driver failed to apply the requested flags."""

    code = -32004


class SessionError(PreventSleepError):
    """Malformed or disconnected client session. Terminates only that session."""

    code = -32005


_BY_CODE = {
    cls.code: cls
    for cls in (ValidationError, NotFoundError, StoreError, DriverError, SessionError)
}


def error_from_code(code: int, message: str) -> PreventSleepError:
    """Rebuild the matching error type from a JSON-RPC error code."""
    return _BY_CODE.get(code, PreventSleepError)(message)

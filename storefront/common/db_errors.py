import asyncio
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

_TRANSIENT_NAME_HINTS = ("timeout", "connection", "brokenpipe", "connectionrefused", "connectionreset", "deadlock", "serialization")


def is_recoverable_exception(exc: BaseException) -> bool:
    """True when a storage error is worth retrying by the caller (dropped connection, timeout, lock conflict).

    Nothing in the cart core retries on its own; the flag travels back on the failure result.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, (TimeoutError, ConnectionError, OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError):
        if getattr(exc, "connection_invalidated", False):
            return True
        orig = getattr(exc, "orig", None)
        if orig is not None:
            name = type(orig).__name__.lower()
            if any(k in name for k in _TRANSIENT_NAME_HINTS):
                return True
    return False

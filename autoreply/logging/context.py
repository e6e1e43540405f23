"""Context propagation for structured logging.

Fields pushed here (event_id, resource_id, attempt, ...) are copied onto every
log record emitted inside the scope. contextvars keeps each asyncio task's
context separate, so a processor running after its queue timeout fired cannot
leak its fields into the next item's logs.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional


LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the current logging context."""
    return LogContextVar.get().copy()


def push_log_context(**kwargs) -> Token:
    """Merge fields into the logging context.

    Args:
        **kwargs: Key-value pairs to add to the logging context

    Returns:
        Token for pop_log_context()

    Example:
        >>> token = push_log_context(event_id="evt_1", resource_id="post-1")
        >>> pop_log_context(token)
    """
    current = LogContextVar.get()
    return LogContextVar.set({**current, **kwargs})


def pop_log_context(token: Token) -> None:
    """Restore the logging context captured by push_log_context()."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Clear all logging context fields (used by tests)."""
    LogContextVar.set({})


class log_context:
    """Scoped logging context usable with both ``with`` and ``async with``.

    Example:
        >>> with log_context(event_id="evt_1"):
        ...     logger.info("Processing event")
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)

"""Event queue exceptions."""


class QueueError(Exception):
    """Base exception for event queue errors."""

    pass


class ProcessingTimeoutError(QueueError):
    """Raised in place of a processor outcome when its attempt timed out.

    The processor itself keeps running; the queue only stops waiting on it.
    """

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Event processing timeout after {timeout_ms}ms")


class QueueClosedError(QueueError):
    """Raised when enqueueing into a queue that has been stopped."""

    pass

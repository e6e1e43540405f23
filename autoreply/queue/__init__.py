"""In-memory, single-consumer event queue with retries and timeouts.

Public API:
    - EventQueue: priority queue drained by one asyncio worker
    - QueueOptions: per-item priority, retry and timeout policy
    - QueueItem / QueueStatus / QueueStatistics: item state and counters
    - ProcessingTimeoutError: failure recorded when an attempt times out
"""

from .exceptions import ProcessingTimeoutError, QueueClosedError, QueueError
from .models import QueueItem, QueueOptions, QueueStatistics, QueueStatus
from .service import QUEUE_EVENTS, EventQueue, generate_item_id

__all__ = [
    "EventQueue",
    "QueueOptions",
    "QueueItem",
    "QueueStatus",
    "QueueStatistics",
    "QUEUE_EVENTS",
    "generate_item_id",
    "QueueError",
    "QueueClosedError",
    "ProcessingTimeoutError",
]

"""Data models for the in-memory event queue."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from autoreply.utils.timestamps import format_timestamp, utc_now


class QueueStatus(str, Enum):
    """Lifecycle state of a queue item.

    PENDING -> PROCESSING -> SUCCESS | PENDING (retry) | FAILED
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.SUCCESS, QueueStatus.FAILED)


@dataclass(frozen=True)
class QueueOptions:
    """
    Per-item scheduling policy.

    Attributes:
        priority: Higher values are processed first (default 0)
        max_retries: Retries allowed after the first attempt (default 3)
        retry_delay_ms: Fixed delay before a failed item is requeued (default 3000)
        timeout_ms: Time the queue waits on one attempt (default 30000)
    """

    priority: int = 0
    max_retries: int = 3
    retry_delay_ms: int = 3000
    timeout_ms: int = 30000

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms cannot be negative")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

    @classmethod
    def from_config(cls, queue_config, priority: int = 0) -> "QueueOptions":
        """Build options from a QueueConfig section."""
        return cls(
            priority=priority,
            max_retries=queue_config.max_retries,
            retry_delay_ms=queue_config.retry_delay_ms,
            timeout_ms=queue_config.timeout_ms,
        )


@dataclass
class QueueItem:
    """
    One queued job and its mutable state.

    Attributes:
        id: Unique identifier assigned at enqueue time
        data: Opaque payload handed to the processor
        processor: Callable invoked as processor(data, item)
        options: Scheduling policy of this item
        status: Current QueueStatus
        retry_count: Retries consumed so far (never exceeds options.max_retries)
        attempts: Number of times the processor has been invoked
        created_at / started_at / completed_at: UTC timestamps
        error: Message of the most recent failure
        exception: The most recent failure itself
        result: Processor return value on success
        duration_ms: Processing time of the final attempt
    """

    id: str
    data: Any
    processor: Callable[..., Any]
    options: QueueOptions
    status: QueueStatus = QueueStatus.PENDING
    retry_count: int = 0
    attempts: int = 0
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = None
    result: Any = None
    duration_ms: Optional[float] = None

    @property
    def priority(self) -> int:
        return self.options.priority

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the item (payload and processor omitted)."""
        return {
            "id": self.id,
            "status": self.status.value,
            "priority": self.options.priority,
            "retry_count": self.retry_count,
            "max_retries": self.options.max_retries,
            "attempts": self.attempts,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return format_timestamp(value, include_microseconds=True) if value else None


@dataclass
class QueueStatistics:
    """Aggregate counters maintained by the queue worker."""

    total_enqueued: int = 0
    total_processed: int = 0
    total_failed: int = 0
    total_retries: int = 0
    total_timeouts: int = 0
    total_cancelled: int = 0
    average_processing_time_ms: float = 0.0

    @property
    def total_completed(self) -> int:
        return self.total_processed + self.total_failed

    @property
    def success_rate(self) -> float:
        if self.total_completed == 0:
            return 0.0
        return round(self.total_processed / self.total_completed * 100, 2)

    @property
    def failure_rate(self) -> float:
        if self.total_completed == 0:
            return 0.0
        return round(self.total_failed / self.total_completed * 100, 2)

    @property
    def retry_rate(self) -> float:
        if self.total_enqueued == 0:
            return 0.0
        return round(self.total_retries / self.total_enqueued * 100, 2)

    def record_completion(self, duration_ms: float, success: bool) -> None:
        if success:
            self.total_processed += 1
        else:
            self.total_failed += 1
        self.average_processing_time_ms += (
            duration_ms - self.average_processing_time_ms
        ) / self.total_completed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_enqueued": self.total_enqueued,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "total_retries": self.total_retries,
            "total_timeouts": self.total_timeouts,
            "total_cancelled": self.total_cancelled,
            "success_rate": self.success_rate,
            "failure_rate": self.failure_rate,
            "retry_rate": self.retry_rate,
            "average_processing_time_ms": round(self.average_processing_time_ms, 3),
        }

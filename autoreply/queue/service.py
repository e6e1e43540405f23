"""Single-consumer, priority-ordered, in-memory event queue.

Items are processed one at a time in priority order (higher first, enqueue
order among equals). A failed attempt is retried after a fixed delay by
re-inserting the item at the front of the queue, so retries run before other
pending work once their delay has elapsed. Each attempt is raced against a
timeout; a timed-out processor keeps running but the queue stops waiting on
it and treats the attempt as failed.

Nothing here is persisted. Items live in memory until they reach a terminal
state, after which a bounded history keeps them available for polling.
"""

import asyncio
import contextlib
import dataclasses
import inspect
import random
import string
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set

from autoreply.logging import get_logger
from autoreply.logging.context import log_context
from autoreply.utils.timestamps import utc_now

from .exceptions import ProcessingTimeoutError, QueueClosedError, QueueError
from .models import QueueItem, QueueOptions, QueueStatistics, QueueStatus

logger = get_logger(__name__, component="queue")

QUEUE_EVENTS = ("added", "processing", "processed", "retry", "failed", "cancelled")
ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_item_id() -> str:
    """Build an id like evt_1730721600000_k3j9x0a1b."""
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(ID_ALPHABET, k=9))
    return f"evt_{millis}_{suffix}"


class EventQueue:
    """In-memory job queue drained by a single asyncio worker.

    Processors are called as ``processor(data, item)`` and may be coroutine
    functions or plain callables. A processor signals failure by raising.

    Args:
        default_options: QueueOptions used when enqueue() is given none
        history_limit: Terminal items kept for get_item()/get_items()
        id_factory: Callable producing item ids
    """

    def __init__(
        self,
        default_options: Optional[QueueOptions] = None,
        history_limit: int = 1000,
        id_factory: Callable[[], str] = generate_item_id,
    ):
        self.default_options = default_options or QueueOptions()
        self.history_limit = history_limit
        self.statistics = QueueStatistics()
        self._id_factory = id_factory

        self._pending: List[QueueItem] = []
        self._scheduled: Dict[str, QueueItem] = {}
        self._retry_handles: Dict[str, asyncio.TimerHandle] = {}
        self._history: "OrderedDict[str, QueueItem]" = OrderedDict()
        self._current: Optional[QueueItem] = None

        self._worker: Optional[asyncio.Task] = None
        self._processing = False
        self._paused = False
        self._closed = False
        self._idle = asyncio.Event()
        self._idle.set()

        self._listeners: Dict[str, List[Callable]] = {name: [] for name in QUEUE_EVENTS}
        self._background: Set[asyncio.Task] = set()
        self._abandoned: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._pending) + len(self._scheduled)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_paused(self) -> bool:
        return self._paused

    # ------------------------------------------------------------------
    # Submission

    def enqueue(
        self,
        data: Any,
        processor: Callable[..., Any],
        options: Optional[QueueOptions] = None,
        **overrides,
    ) -> str:
        """Add a job and return its id immediately.

        Must be called from within a running event loop; the worker is
        started on that loop if it is idle.

        Args:
            data: Payload handed to the processor
            processor: Callable invoked as processor(data, item)
            options: Scheduling policy (defaults to the queue's default_options)
            **overrides: Individual QueueOptions fields to override

        Returns:
            The new item's id

        Raises:
            QueueClosedError: If the queue has been stopped
        """
        if self._closed:
            raise QueueClosedError("Event queue is stopped")
        if not callable(processor):
            raise TypeError("processor must be callable")

        options = options or self.default_options
        if overrides:
            options = dataclasses.replace(options, **overrides)

        item = QueueItem(id=self._new_id(), data=data, processor=processor, options=options)
        self._insert_by_priority(item)
        self.statistics.total_enqueued += 1
        self._idle.clear()

        logger.debug(
            "Item enqueued",
            extra={
                "event": "queue.item.enqueued",
                "item_id": item.id,
                "priority": options.priority,
                "queue_size": len(self),
            },
        )

        self._notify_soon("added", item)
        self._ensure_worker()
        return item.id

    def _new_id(self) -> str:
        for _ in range(10):
            item_id = self._id_factory()
            if self.get_item(item_id) is None:
                return item_id
        raise QueueError("Could not generate a unique item id")

    def _insert_by_priority(self, item: QueueItem) -> None:
        for index, queued in enumerate(self._pending):
            if queued.priority < item.priority:
                self._pending.insert(index, item)
                return
        self._pending.append(item)

    # ------------------------------------------------------------------
    # Worker

    def _ensure_worker(self) -> None:
        if self._paused or self._closed or not self._pending:
            return
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            while self._pending and not self._paused:
                item = self._pending.pop(0)
                await self._process(item)
        finally:
            self._worker = None
            self._check_idle()

    async def _process(self, item: QueueItem) -> None:
        self._current = item
        self._processing = True
        item.status = QueueStatus.PROCESSING
        item.started_at = utc_now()
        item.attempts += 1
        started = time.perf_counter()

        async with log_context(item_id=item.id, attempt=item.attempts):
            logger.debug(
                "Processing item",
                extra={
                    "event": "queue.item.processing",
                    "item_id": item.id,
                    "retry_count": item.retry_count,
                },
            )
            await self._emit("processing", item)

            try:
                result = await self._run_attempt(item)
            except asyncio.CancelledError:
                # Worker stopped mid-attempt; the item goes back to the front
                item.status = QueueStatus.PENDING
                item.started_at = None
                self._pending.insert(0, item)
                raise
            except Exception as e:
                item.duration_ms = round((time.perf_counter() - started) * 1000, 3)
                self._current = None
                self._processing = False
                await self._handle_failure(item, e)
            else:
                item.duration_ms = round((time.perf_counter() - started) * 1000, 3)
                self._current = None
                self._processing = False
                await self._handle_success(item, result)
            finally:
                self._current = None
                self._processing = False

    async def _run_attempt(self, item: QueueItem) -> Any:
        task = asyncio.ensure_future(self._invoke(item))
        try:
            done, _ = await asyncio.wait({task}, timeout=item.options.timeout_ms / 1000.0)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        self._abandon(task, item)
        raise ProcessingTimeoutError(item.options.timeout_ms)

    @staticmethod
    async def _invoke(item: QueueItem) -> Any:
        outcome = item.processor(item.data, item)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    def _abandon(self, task: asyncio.Task, item: QueueItem) -> None:
        self._abandoned.add(task)
        item_id = item.id

        def _finished(finished: asyncio.Task) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            logger.debug(
                "Timed-out processor finished",
                extra={
                    "event": "queue.item.abandoned_finished",
                    "item_id": item_id,
                    "error_type": type(error).__name__ if error else None,
                },
            )

        task.add_done_callback(_finished)

    async def _handle_success(self, item: QueueItem, result: Any) -> None:
        item.status = QueueStatus.SUCCESS
        item.completed_at = utc_now()
        item.result = result
        self.statistics.record_completion(item.duration_ms or 0.0, success=True)
        self._remember(item)

        logger.info(
            "Item processed",
            extra={
                "event": "queue.item.processed",
                "item_id": item.id,
                "retry_count": item.retry_count,
                "duration_ms": item.duration_ms,
            },
        )
        await self._emit("processed", item)

    async def _handle_failure(self, item: QueueItem, error: Exception) -> None:
        item.error = str(error) or type(error).__name__
        item.exception = error
        if isinstance(error, ProcessingTimeoutError):
            self.statistics.total_timeouts += 1

        if item.retry_count < item.options.max_retries:
            item.retry_count += 1
            item.status = QueueStatus.PENDING
            item.started_at = None
            self.statistics.total_retries += 1
            self._schedule_retry(item)

            logger.warning(
                f"Item failed, retry {item.retry_count}/{item.options.max_retries} scheduled: {item.error}",
                extra={
                    "event": "queue.item.retry_scheduled",
                    "item_id": item.id,
                    "retry_count": item.retry_count,
                    "retry_delay_ms": item.options.retry_delay_ms,
                    "error_type": type(error).__name__,
                },
            )
            await self._emit("retry", item)
            return

        item.status = QueueStatus.FAILED
        item.completed_at = utc_now()
        self.statistics.record_completion(item.duration_ms or 0.0, success=False)
        self._remember(item)

        logger.error(
            f"Item failed permanently: {item.error}",
            extra={
                "event": "queue.item.failed",
                "item_id": item.id,
                "retry_count": item.retry_count,
                "error_type": type(error).__name__,
            },
        )
        await self._emit("failed", item)

    def _schedule_retry(self, item: QueueItem) -> None:
        loop = asyncio.get_running_loop()
        self._scheduled[item.id] = item
        self._retry_handles[item.id] = loop.call_later(
            item.options.retry_delay_ms / 1000.0, self._requeue, item.id
        )

    def _requeue(self, item_id: str) -> None:
        self._retry_handles.pop(item_id, None)
        item = self._scheduled.pop(item_id, None)
        if item is None or self._closed:
            return
        self._pending.insert(0, item)
        self._ensure_worker()

    def _remember(self, item: QueueItem) -> None:
        if self.history_limit <= 0:
            return
        self._history[item.id] = item
        while len(self._history) > self.history_limit:
            self._history.popitem(last=False)

    def _check_idle(self) -> None:
        if self._pending or self._scheduled or self._current is not None:
            return
        if self._worker is not None and not self._worker.done():
            return
        self._idle.set()

    # ------------------------------------------------------------------
    # Notifications

    def subscribe(self, event: str, callback: Callable[[QueueItem], Any]) -> Callable[[], None]:
        """Register a listener for a lifecycle event.

        Events: added, processing, processed, retry, failed, cancelled.
        Listeners receive the QueueItem and may be coroutine functions.
        Listener errors are logged and never affect the item.

        Returns:
            A callable that removes the listener
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown queue event '{event}'. Expected one of: {', '.join(QUEUE_EVENTS)}")
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners[event].remove(callback)

        return unsubscribe

    async def _emit(self, event: str, item: QueueItem) -> None:
        for callback in list(self._listeners[event]):
            try:
                outcome = callback(item)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    f"Queue listener failed: {e}",
                    exc_info=True,
                    extra={
                        "event": "queue.listener_failed",
                        "queue_event": event,
                        "item_id": item.id,
                        "error_type": type(e).__name__,
                    },
                )

    def _notify_soon(self, event: str, item: QueueItem) -> None:
        if not self._listeners[event]:
            return
        task = asyncio.get_running_loop().create_task(self._emit(event, item))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Control

    def cancel(self, item_id: str) -> bool:
        """Remove a pending item, including one waiting for its retry delay.

        Returns:
            True if removed; False if unknown, terminal, or currently processing
        """
        if self._current is not None and self._current.id == item_id:
            logger.info(
                "Cannot cancel item while it is processing",
                extra={"event": "queue.item.cancel_refused", "item_id": item_id},
            )
            return False

        item = None
        for index, queued in enumerate(self._pending):
            if queued.id == item_id:
                item = self._pending.pop(index)
                break
        else:
            item = self._scheduled.pop(item_id, None)
            handle = self._retry_handles.pop(item_id, None)
            if handle is not None:
                handle.cancel()

        if item is None:
            return False

        self.statistics.total_cancelled += 1
        logger.info(
            "Item cancelled",
            extra={"event": "queue.item.cancelled", "item_id": item_id},
        )
        self._notify_soon("cancelled", item)
        self._check_idle()
        return True

    def clear(self) -> int:
        """Remove every pending item and scheduled retry. Returns the count removed."""
        removed = len(self._pending) + len(self._scheduled)
        for handle in self._retry_handles.values():
            handle.cancel()
        self._pending.clear()
        self._scheduled.clear()
        self._retry_handles.clear()

        if removed:
            logger.info("Queue cleared", extra={"event": "queue.cleared", "removed": removed})
        self._check_idle()
        return removed

    def clear_completed(self) -> int:
        """Drop terminal items from the history. Returns the count removed."""
        removed = len(self._history)
        self._history.clear()
        if removed:
            logger.debug(
                "Completed items cleared",
                extra={"event": "queue.completed_cleared", "removed": removed},
            )
        return removed

    def pause(self) -> None:
        """Stop taking new items; the item in flight finishes normally."""
        self._paused = True
        logger.info("Queue paused", extra={"event": "queue.paused"})

    def resume(self) -> None:
        self._paused = False
        logger.info("Queue resumed", extra={"event": "queue.resumed"})
        self._ensure_worker()

    async def join(self) -> None:
        """Wait until nothing is pending, processing or waiting to be retried.

        Does not return while the queue is paused with items pending.
        """
        await self._idle.wait()

    async def stop(self) -> None:
        """Reject new items, cancel scheduled retries and stop the worker."""
        self._closed = True
        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()
        self._scheduled.clear()

        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

        for task in list(self._background | self._abandoned):
            task.cancel()

        logger.info(
            "Queue stopped",
            extra={"event": "queue.stopped", "pending": len(self._pending)},
        )

    # ------------------------------------------------------------------
    # Inspection

    def get_item(self, item_id: str) -> Optional[QueueItem]:
        if self._current is not None and self._current.id == item_id:
            return self._current
        for item in self._pending:
            if item.id == item_id:
                return item
        return self._scheduled.get(item_id) or self._history.get(item_id)

    def get_items(
        self, status: Optional[QueueStatus] = None, limit: Optional[int] = None
    ) -> List[QueueItem]:
        """List known items: in flight, pending, awaiting retry, then history newest first.

        Args:
            status: Only return items in this status
            limit: Maximum number of items returned
        """
        items: List[QueueItem] = []
        if self._current is not None:
            items.append(self._current)
        items.extend(self._pending)
        items.extend(self._scheduled.values())
        items.extend(reversed(self._history.values()))

        if status is not None:
            status = QueueStatus(status)
            items = [item for item in items if item.status == status]
        if limit is not None:
            items = items[:limit]
        return items

    def get_status(self) -> Dict[str, Any]:
        return {
            "size": len(self),
            "pending": len(self._pending),
            "awaiting_retry": len(self._scheduled),
            "processing": self._processing,
            "current_item_id": self._current.id if self._current else None,
            "paused": self._paused,
            "closed": self._closed,
            "counts": {
                QueueStatus.PENDING.value: len(self),
                QueueStatus.PROCESSING.value: 1 if self._current is not None else 0,
                QueueStatus.SUCCESS.value: self.statistics.total_processed,
                QueueStatus.FAILED.value: self.statistics.total_failed,
            },
            "history_size": len(self._history),
        }

    def get_statistics(self) -> Dict[str, Any]:
        stats = self.statistics.to_dict()
        stats["queue_size"] = len(self)
        stats["processing"] = self._processing
        return stats

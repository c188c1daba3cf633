"""
Progress tracking and streaming for migration jobs.

- estimate_remaining / progress_percent: pure ETA and percentage math
- MigrationProgress: one notification per completed batch
- ProgressTracker: owns the clock and the completed-batch count
- ProgressStream: observer channel that fans notifications out to
  subscribers as async iterators

Example:
    >>> stream = ProgressStream()
    >>> updates = stream.subscribe()
    >>> orchestrator = MigrationOrchestrator(source, sink, progress_stream=stream)
    >>> task = asyncio.create_task(orchestrator.run())
    >>> async for progress in updates:
    ...     print(f"{progress.progress_percent:.0f}% eta={progress.estimated_remaining_seconds}")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Elapsed time below which an ETA is not reported
MIN_ELAPSED_FOR_ETA = 1.0


def progress_percent(completed: int, total: int) -> float:
    """Completed share of ``total`` as a percentage (0 when total is 0)."""
    if total <= 0:
        return 0.0
    return completed / total * 100


def estimate_remaining(completed: int, total: int, elapsed: float) -> float | None:
    """
    Estimate the seconds left from the average time per completed batch.

    Returns None until at least one batch is complete and one second has
    elapsed. The estimate never goes below zero.
    """
    if completed < 1 or elapsed < MIN_ELAPSED_FOR_ETA:
        return None
    remaining = total - completed
    return max(0.0, elapsed / completed * remaining)


@dataclass(frozen=True)
class MigrationProgress:
    """
    Progress notification emitted after a batch completes.

    Attributes:
        current_batch: Sequence number of the batch that just completed
        total_batches: Number of batches in the job
        records_in_batch: Size of that batch
        total_records_processed: Cumulative records processed so far
        elapsed_seconds: Time since loading started
        estimated_remaining_seconds: ETA, or None when it cannot be estimated
        batches_completed: Number of batches completed so far
    """

    current_batch: int
    total_batches: int
    records_in_batch: int
    total_records_processed: int
    elapsed_seconds: float
    estimated_remaining_seconds: float | None
    batches_completed: int

    @property
    def progress_percent(self) -> float:
        return progress_percent(self.batches_completed, self.total_batches)

    @property
    def message(self) -> str:
        eta = (
            f", ~{self.estimated_remaining_seconds:.0f}s remaining"
            if self.estimated_remaining_seconds is not None
            else ""
        )
        return (
            f"Batch {self.current_batch}/{self.total_batches} done "
            f"({self.total_records_processed} records processed{eta})"
        )


class ProgressTracker:
    """
    Turns batch completions into MigrationProgress notifications.

    Args:
        total_batches: Number of batches in the job
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        total_batches: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._total_batches = total_batches
        self._clock = clock
        self._started_at: float | None = None
        self._completed = 0

    @property
    def completed_batches(self) -> int:
        return self._completed

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def start(self) -> None:
        self._started_at = self._clock()
        self._completed = 0

    def batch_completed(
        self,
        batch_number: int,
        records_in_batch: int,
        total_processed: int,
    ) -> MigrationProgress:
        """Count a completed batch and build its notification."""
        if self._started_at is None:
            self.start()
        self._completed += 1
        elapsed = self.elapsed
        return MigrationProgress(
            current_batch=batch_number,
            total_batches=self._total_batches,
            records_in_batch=records_in_batch,
            total_records_processed=total_processed,
            elapsed_seconds=elapsed,
            estimated_remaining_seconds=estimate_remaining(
                self._completed, self._total_batches, elapsed
            ),
            batches_completed=self._completed,
        )


class ProgressStream:
    """
    Fan-out channel for progress notifications.

    Each subscriber gets its own unbounded queue, so notifications are
    delivered in publish order. Subscriptions end when the stream is closed.

    Thread Safety:
        Designed for asyncio; publish and subscribe from the same event loop.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, asyncio.Queue[MigrationProgress | None]] = {}
        self._next_subscriber_id = 0
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def subscribe(self) -> AsyncIterator[MigrationProgress]:
        """
        Register a subscriber and return its iterator.

        Registration happens immediately, so no notification published after
        this call is missed even if iteration starts later.

        Raises:
            RuntimeError: If the stream has been closed
        """
        if self._closed:
            raise RuntimeError("ProgressStream has been closed")

        subscriber_id = self._next_subscriber_id
        self._next_subscriber_id += 1
        queue: asyncio.Queue[MigrationProgress | None] = asyncio.Queue()
        self._subscribers[subscriber_id] = queue
        logger.debug(
            "Registered progress subscriber %d (total: %d)",
            subscriber_id,
            len(self._subscribers),
        )
        return self._iterate(subscriber_id, queue)

    async def _iterate(
        self,
        subscriber_id: int,
        queue: asyncio.Queue[MigrationProgress | None],
    ) -> AsyncIterator[MigrationProgress]:
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item
        finally:
            self._subscribers.pop(subscriber_id, None)

    def publish(self, progress: MigrationProgress) -> None:
        if self._closed:
            return
        for queue in list(self._subscribers.values()):
            queue.put_nowait(progress)

    def close(self) -> None:
        """Close the stream; active subscriptions finish after draining."""
        if self._closed:
            return
        self._closed = True
        for queue in list(self._subscribers.values()):
            queue.put_nowait(None)


__all__ = [
    "MIN_ELAPSED_FOR_ETA",
    "MigrationProgress",
    "ProgressStream",
    "ProgressTracker",
    "estimate_remaining",
    "progress_percent",
]

"""
MigrationOrchestrator - drives one migration job from source to sink.

Lifecycle:
    IDLE -> PRE_CHECKING -> PREPARING -> LOADING -> RECONCILING -> COMPLETED
                 |
                 +--> DRY_RUN_ANALYZING -> COMPLETED

Any non-terminal state can end in FAILED (fatal error) or CANCELLED
(``cancel()``). Cancellation is cooperative: it is checked between phases
and between batches, never inside a batch's transaction.

Batches run sequentially by default. With parallel processing enabled, a
bounded pool of worker tasks pulls batches from a shared queue; outcomes
are folded into the shared MigrationResult through its locked mutators.

Usage:
    >>> orchestrator = MigrationOrchestrator(source, sink, MigrationSettings())
    >>> result = await orchestrator.run()
    >>> print(result.summary())
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from accessmigrate.batching import Batch, split_into_batches
from accessmigrate.config import MigrationSettings
from accessmigrate.exceptions import (
    BatchFailedError,
    ConnectivityError,
    InvalidRecordsError,
    InvalidStateTransitionError,
    MigrationError,
)
from accessmigrate.metrics import MigrationMetrics
from accessmigrate.observability import (
    ATTR_BATCH_NUMBER,
    ATTR_BATCH_SIZE,
    ATTR_DRY_RUN,
    ATTR_MIGRATION_STATE,
    ATTR_PARALLEL,
    ATTR_RECORDS_INSERTED,
    ATTR_SOURCE_IDENTIFIER,
    ATTR_SOURCE_TYPE,
    ATTR_TOTAL_BATCHES,
    Tracer,
    create_tracer,
)
from accessmigrate.progress import MigrationProgress, ProgressStream, ProgressTracker
from accessmigrate.records import AccessEventRecord
from accessmigrate.result import BatchOutcome, MigrationResult, MigrationState
from accessmigrate.sinks.interface import BatchInsertResult, RecordSink
from accessmigrate.sources.interface import RecordSource
from accessmigrate.validation import RecordValidator, compute_batch_stats

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[MigrationProgress], None]


class MigrationOrchestrator:
    """
    Runs a single migration job.

    Args:
        source: Where records are read from
        sink: Where records are written; may be None for a dry run, which
            never touches the target
        settings: Job settings (defaults to MigrationSettings())
        validator: Record validator (defaults to the standard rule set)
        progress_callback: Called with each MigrationProgress; exceptions it
            raises are logged and ignored
        progress_stream: Stream that receives each MigrationProgress and is
            closed when the job ends
        metrics: Metric instruments (created when not provided)
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing
        clock: Monotonic clock in seconds (injectable for tests)

    An orchestrator runs once; create a new one for every job.
    """

    def __init__(
        self,
        source: RecordSource,
        sink: RecordSink | None,
        settings: MigrationSettings | None = None,
        *,
        validator: RecordValidator | None = None,
        progress_callback: ProgressCallback | None = None,
        progress_stream: ProgressStream | None = None,
        metrics: MigrationMetrics | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or MigrationSettings()
        if sink is None and not self._settings.dry_run:
            raise ValueError("A sink is required unless dry_run is set")
        self._source = source
        self._sink = sink
        self._target_table = sink.table_name if sink is not None else self._settings.table_name
        self._validator = validator or RecordValidator()
        self._progress_callback = progress_callback
        self._progress_stream = progress_stream
        self._metrics = metrics or MigrationMetrics(
            source_type=source.source_type.value,
            target_table=self._target_table,
        )
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._clock = clock

        self._state = MigrationState.IDLE
        self._cancel_requested = False
        self._result: MigrationResult | None = None

    @property
    def state(self) -> MigrationState:
        return self._state

    @property
    def settings(self) -> MigrationSettings:
        return self._settings

    @property
    def result(self) -> MigrationResult | None:
        """The job result; None before ``run`` is called."""
        return self._result

    @property
    def is_cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Request cooperative cancellation of a running job."""
        if self._state.is_terminal:
            return
        if not self._cancel_requested:
            logger.info("Cancellation requested (state: %s)", self._state.value)
        self._cancel_requested = True

    @property
    def _target(self) -> RecordSink:
        if self._sink is None:
            raise MigrationError("No sink configured for this job")
        return self._sink

    def _transition(self, target: MigrationState) -> None:
        if not self._state.can_transition_to(target):
            raise InvalidStateTransitionError(self._state, target)
        logger.debug("Migration state %s -> %s", self._state.value, target.value)
        self._state = target

    # =========================================================================
    # Job
    # =========================================================================

    async def run(self) -> MigrationResult:
        """
        Run the job to a terminal state.

        Job failures are reported through the returned result, never raised.

        Raises:
            InvalidStateTransitionError: If this orchestrator already ran
        """
        self._transition(MigrationState.PRE_CHECKING)

        settings = self._settings
        result = MigrationResult(
            source_type=self._source.source_type,
            source_identifier=self._source.identifier,
            batch_size=settings.batch_size,
            target_table=self._target_table,
        )
        self._result = result

        logger.info(
            "Starting migration from %s %s into %s (batch size %d, parallel=%s, dry_run=%s)",
            self._source.source_type.value,
            self._source.identifier,
            self._target_table,
            settings.batch_size,
            settings.enable_parallel_processing,
            settings.dry_run,
        )

        with self._tracer.span(
            "migration.run",
            {
                ATTR_SOURCE_TYPE: self._source.source_type.value,
                ATTR_SOURCE_IDENTIFIER: self._source.identifier,
                ATTR_PARALLEL: settings.enable_parallel_processing,
                ATTR_DRY_RUN: settings.dry_run,
            },
        ) as span:
            try:
                await self._execute(result)
            except MigrationError as e:
                logger.error("Migration failed: %s", e)
                result.add_error(str(e))
                self._finish(result, MigrationState.FAILED, str(e))
            except Exception as e:
                logger.exception("Unexpected error during migration")
                message = f"Unexpected error: {e}"
                result.add_error(message)
                self._finish(result, MigrationState.FAILED, message)
            finally:
                if self._progress_stream is not None:
                    self._progress_stream.close()

            if span is not None:
                span.set_attribute(ATTR_MIGRATION_STATE, self._state.value)
                span.set_attribute(ATTR_RECORDS_INSERTED, result.inserted)

        logger.info(
            "Migration finished in state %s: %d processed, %d inserted, %d skipped, %d failed",
            self._state.value,
            result.total_processed,
            result.inserted,
            result.skipped,
            result.failed,
        )
        return result

    async def _execute(self, result: MigrationResult) -> None:
        await self._pre_check(result)
        if self._cancel_requested:
            self._finish_cancelled(result)
            return

        if self._settings.dry_run:
            self._transition(MigrationState.DRY_RUN_ANALYZING)
            await self._analyze_sample(result)
            self._finish(result, MigrationState.COMPLETED)
            return

        self._transition(MigrationState.PREPARING)
        await self._prepare_target(result)
        if self._cancel_requested:
            self._finish_cancelled(result)
            return

        self._transition(MigrationState.LOADING)
        abort_message = await self._load(result)
        if abort_message is not None:
            self._finish(result, MigrationState.FAILED, abort_message)
            return
        if self._cancel_requested:
            self._finish_cancelled(result)
            return

        self._transition(MigrationState.RECONCILING)
        await self._reconcile(result)
        self._finish(result, MigrationState.COMPLETED)

    def _finish(
        self,
        result: MigrationResult,
        state: MigrationState,
        error_message: str | None = None,
    ) -> None:
        self._transition(state)
        result.complete(state, error_message)

    def _finish_cancelled(self, result: MigrationResult) -> None:
        logger.warning("Migration cancelled during %s", self._state.value)
        self._finish(result, MigrationState.CANCELLED, "Migration cancelled")

    # =========================================================================
    # Phases
    # =========================================================================

    async def _pre_check(self, result: MigrationResult) -> None:
        source_label = f"{self._source.source_type.value} source {self._source.identifier}"

        logger.info("Testing source connection")
        if not await self._source.test_connection():
            raise ConnectivityError(source_label, "connection test failed")

        if not await self._source.check_health():
            result.add_warning(f"Health check failed for {source_label}")

        if not self._settings.dry_run:
            logger.info("Testing target connection")
            if not await self._target.test_connection():
                raise ConnectivityError(
                    f"target table {self._target_table}", "connection test failed"
                )

        total = await self._source.count()
        result.set_source_total(total)
        logger.info("Source holds %d records", total)

    async def _analyze_sample(self, result: MigrationResult) -> None:
        sample_size = self._settings.dry_run_sample_size
        sample = await self._source.fetch_sample(sample_size)
        outcomes = self._validator.validate_batch(sample, with_warnings=True)
        stats = compute_batch_stats(outcomes)
        result.record_dry_run(stats)
        logger.info("Dry run analyzed %d records: %s", len(sample), stats.describe())

    async def _prepare_target(self, result: MigrationResult) -> None:
        if await self._target.table_exists():
            if self._settings.truncate_before_migration:
                await self._target.truncate_table()
                before = 0
            else:
                before = await self._target.count()
        else:
            logger.info("Creating table %s", self._target_table)
            await self._target.create_table()
            before = 0
        result.set_target_counts(before=before)
        logger.info("Target holds %d records before migration", before)

    async def _load(self, result: MigrationResult) -> str | None:
        """
        Fetch, split and load every batch.

        Returns:
            The failure message when stop-on-error aborted the job, else None
        """
        records = await self._source.fetch_all()
        if not records:
            result.add_warning("No records found in source")
            logger.warning("No records found in source %s", self._source.identifier)
            return None

        batches = split_into_batches(records, self._settings.batch_size)
        tracker = ProgressTracker(len(batches), clock=self._clock)
        tracker.start()
        logger.info("Loading %d records in %d batches", len(records), len(batches))

        if self._settings.enable_parallel_processing and len(batches) > 1:
            return await self._run_parallel(result, batches, tracker)
        return await self._run_sequential(result, batches, tracker)

    async def _run_sequential(
        self,
        result: MigrationResult,
        batches: list[Batch[AccessEventRecord]],
        tracker: ProgressTracker,
    ) -> str | None:
        for batch in batches:
            if self._cancel_requested:
                break
            outcome = await self._process_batch(result, batch, len(batches))
            self._record_outcome(result, tracker, outcome)
            if outcome.error is not None and self._settings.stop_on_error:
                return str(BatchFailedError(batch.number, outcome.error))
        return None

    async def _run_parallel(
        self,
        result: MigrationResult,
        batches: list[Batch[AccessEventRecord]],
        tracker: ProgressTracker,
    ) -> str | None:
        queue: asyncio.Queue[Batch[AccessEventRecord]] = asyncio.Queue()
        for batch in batches:
            queue.put_nowait(batch)

        halted = False
        first_failure: str | None = None

        async def worker() -> None:
            nonlocal halted, first_failure
            while not halted and not self._cancel_requested:
                try:
                    batch = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcome = await self._process_batch(result, batch, len(batches))
                self._record_outcome(result, tracker, outcome)
                if outcome.error is not None and self._settings.stop_on_error:
                    halted = True
                    if first_failure is None:
                        first_failure = str(BatchFailedError(batch.number, outcome.error))

        worker_count = min(self._settings.max_concurrency, len(batches))
        logger.info("Running %d batches on %d workers", len(batches), worker_count)
        await asyncio.gather(*(worker() for _ in range(worker_count)))
        return first_failure

    async def _process_batch(
        self,
        result: MigrationResult,
        batch: Batch[AccessEventRecord],
        total_batches: int,
    ) -> BatchOutcome:
        """Validate and load one batch; failures become a failed outcome."""
        started = self._clock()
        with self._tracer.span(
            "migration.batch",
            {
                ATTR_BATCH_NUMBER: batch.number,
                ATTR_BATCH_SIZE: batch.size,
                ATTR_TOTAL_BATCHES: total_batches,
            },
        ):
            try:
                valid = list(batch.records)
                invalid = 0
                if self._settings.validate_records:
                    valid = [
                        outcome.record
                        for outcome in self._validator.validate_batch(batch.records)
                        if outcome.is_valid and outcome.record is not None
                    ]
                    invalid = batch.size - len(valid)
                    if invalid:
                        if self._settings.stop_on_error:
                            raise InvalidRecordsError(batch.number, invalid)
                        result.add_warning(
                            f"Batch {batch.number}: {invalid} invalid records skipped"
                        )
                        logger.warning(
                            "Batch %d: %d invalid records skipped",
                            batch.number,
                            invalid,
                            extra={"batch_number": batch.number, "invalid": invalid},
                        )

                if valid:
                    inserted = await self._target.insert_batch(valid)
                else:
                    inserted = BatchInsertResult(inserted=0)

                failed = invalid + inserted.rejected
                outcome = BatchOutcome(
                    batch_number=batch.number,
                    batch_size=batch.size,
                    inserted=inserted.inserted,
                    skipped=batch.size - inserted.inserted - failed,
                    failed=failed,
                    duration_seconds=self._clock() - started,
                )
            except Exception as e:
                detail = e.detail if isinstance(e, BatchFailedError) else str(e)
                logger.error(
                    "Batch %d failed: %s",
                    batch.number,
                    detail,
                    extra={"batch_number": batch.number, "batch_size": batch.size},
                )
                return BatchOutcome.failed_batch(
                    batch.number,
                    batch.size,
                    self._clock() - started,
                    detail,
                )

        logger.debug(
            "Batch %d/%d: %d inserted, %d skipped, %d failed in %.2fs",
            batch.number,
            total_batches,
            outcome.inserted,
            outcome.skipped,
            outcome.failed,
            outcome.duration_seconds,
            extra={"batch_number": batch.number, "batch_size": batch.size},
        )
        return outcome

    def _record_outcome(
        self,
        result: MigrationResult,
        tracker: ProgressTracker,
        outcome: BatchOutcome,
    ) -> None:
        result.record_batch(outcome)
        self._metrics.record_batch(outcome)
        progress = tracker.batch_completed(
            outcome.batch_number,
            outcome.batch_size,
            result.total_processed,
        )
        self._notify(progress)

    def _notify(self, progress: MigrationProgress) -> None:
        if self._progress_stream is not None:
            self._progress_stream.publish(progress)
        if self._progress_callback is not None:
            try:
                self._progress_callback(progress)
            except Exception as e:
                logger.warning("Progress callback raised: %s", e)

    async def _reconcile(self, result: MigrationResult) -> None:
        if self._settings.ignore_duplicates:
            try:
                removed = await self._target.cleanup_duplicates()
            except Exception as e:
                logger.error("Duplicate cleanup failed: %s", e)
                result.add_error(f"Duplicate cleanup failed: {e}")
            else:
                if removed > 0:
                    result.add_skipped(removed)
                    result.add_warning(f"{removed} duplicate records removed")
                    self._metrics.record_duplicates_removed(removed)

        after = await self._target.count()
        result.set_target_counts(after=after)
        logger.info("Target holds %d records after migration", after)


__all__ = ["MigrationOrchestrator", "ProgressCallback"]

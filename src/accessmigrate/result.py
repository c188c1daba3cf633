"""
Job state and outcome models.

Enums:
    - SourceType: Where the records come from
    - MigrationState: Orchestrator lifecycle states

Models:
    - BatchOutcome: Counts and timing for one loaded batch
    - MigrationResult: Aggregate result of a job, sealed exactly once
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from accessmigrate.exceptions import ResultSealedError

if TYPE_CHECKING:
    from accessmigrate.validation.stats import BatchValidationStats


class SourceType(Enum):
    """Kind of record source."""

    ELASTICSEARCH = "elasticsearch"
    CSV = "csv"
    MEMORY = "memory"


class MigrationState(Enum):
    """
    Migration orchestrator lifecycle states.

    State machine transitions:
        IDLE -> PRE_CHECKING -> PREPARING -> LOADING -> RECONCILING -> COMPLETED
                     |
                     +--> DRY_RUN_ANALYZING -> COMPLETED
        Any non-terminal state -> FAILED (fatal error)
        Any non-terminal state -> CANCELLED (cooperative cancellation)
    """

    IDLE = "idle"
    """Orchestrator created, not started."""

    PRE_CHECKING = "pre_checking"
    """Probing source and sink reachability."""

    DRY_RUN_ANALYZING = "dry_run_analyzing"
    """Validating a sample without writing to the target."""

    PREPARING = "preparing"
    """Creating or truncating the target table."""

    LOADING = "loading"
    """Executing batches."""

    RECONCILING = "reconciling"
    """Removing duplicate rows from the target."""

    COMPLETED = "completed"
    """Job finished."""

    FAILED = "failed"
    """Job stopped on a fatal error."""

    CANCELLED = "cancelled"
    """Job stopped by request."""

    @property
    def is_terminal(self) -> bool:
        return self in (
            MigrationState.COMPLETED,
            MigrationState.FAILED,
            MigrationState.CANCELLED,
        )

    def can_transition_to(self, target: MigrationState) -> bool:
        """
        Check if transition to target state is valid.

        Args:
            target: The state to transition to.

        Returns:
            True if the transition is valid.
        """
        if self.is_terminal:
            return False

        if target in (MigrationState.FAILED, MigrationState.CANCELLED):
            return True

        valid_transitions = {
            MigrationState.IDLE: {MigrationState.PRE_CHECKING},
            MigrationState.PRE_CHECKING: {
                MigrationState.DRY_RUN_ANALYZING,
                MigrationState.PREPARING,
            },
            MigrationState.DRY_RUN_ANALYZING: {MigrationState.COMPLETED},
            MigrationState.PREPARING: {MigrationState.LOADING},
            MigrationState.LOADING: {MigrationState.RECONCILING},
            MigrationState.RECONCILING: {MigrationState.COMPLETED},
        }

        return target in valid_transitions.get(self, set())


@dataclass(frozen=True)
class BatchOutcome:
    """
    Outcome of loading one batch.

    Attributes:
        batch_number: Sequence number of the batch
        batch_size: Records in the batch
        inserted: Rows written to the target
        skipped: Rows not written because they already existed
        failed: Rows rejected by validation or by the loader
        duration_seconds: Wall time spent on the batch
        error: Failure message when the whole batch failed
    """

    batch_number: int
    batch_size: int
    inserted: int
    skipped: int
    failed: int
    duration_seconds: float
    error: str | None = None

    def __post_init__(self) -> None:
        if min(self.inserted, self.skipped, self.failed) < 0:
            raise ValueError(
                f"Batch {self.batch_number} counts must be non-negative: "
                f"inserted={self.inserted} skipped={self.skipped} failed={self.failed}"
            )
        if self.inserted + self.skipped + self.failed != self.batch_size:
            raise ValueError(
                f"Batch {self.batch_number} counts do not add up: "
                f"{self.inserted} + {self.skipped} + {self.failed} != {self.batch_size}"
            )

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def failed_batch(
        cls,
        batch_number: int,
        batch_size: int,
        duration_seconds: float,
        error: str,
    ) -> BatchOutcome:
        """Outcome for a batch whose every record counts as failed."""
        return cls(
            batch_number=batch_number,
            batch_size=batch_size,
            inserted=0,
            skipped=0,
            failed=batch_size,
            duration_seconds=duration_seconds,
            error=error,
        )


def _format_duration(duration: timedelta) -> str:
    total = int(duration.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class MigrationResult:
    """
    Aggregate result of a migration job.

    Created when a job starts and mutated by batch workers through the
    ``record_batch``, ``add_skipped``, ``add_warning`` and ``add_error``
    methods. Each of these is atomic under one lock, so concurrent workers
    keep ``inserted + skipped + failed == total_processed`` for the batch
    phase. ``complete`` seals the result: it sets ``end_time`` once and any
    later mutation raises ResultSealedError.

    Thread Safety:
        Mutating methods are guarded by a ``threading.Lock`` and may be
        called from worker tasks or threads.
    """

    def __init__(
        self,
        source_type: SourceType,
        source_identifier: str | None = None,
        batch_size: int = 0,
        target_table: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._start_time = datetime.now(UTC)
        self._end_time: datetime | None = None

        self.source_type = source_type
        self.source_identifier = source_identifier
        self.batch_size = batch_size
        self.target_table = target_table

        self.success = False
        self.error_message: str | None = None
        self.final_state: MigrationState | None = None

        self.total_in_source = 0
        self.total_processed = 0
        self.inserted = 0
        self.skipped = 0
        self.failed = 0
        self.batches_processed = 0
        self.records_before_migration = 0
        self.records_after_migration = 0

        self.batch_errors: dict[int, str] = {}
        self.batch_durations: dict[int, float] = {}
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.validation_stats: BatchValidationStats | None = None

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def end_time(self) -> datetime | None:
        return self._end_time

    @property
    def is_complete(self) -> bool:
        return self._end_time is not None

    @property
    def duration(self) -> timedelta:
        end = self._end_time or datetime.now(UTC)
        return end - self._start_time

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def success_rate(self) -> float:
        """Inserted records as a percentage of processed records."""
        if self.total_processed <= 0:
            return 0.0
        return self.inserted / self.total_processed * 100

    @property
    def records_per_second(self) -> float:
        seconds = self.duration.total_seconds()
        if seconds <= 0:
            return 0.0
        return self.total_processed / seconds

    @property
    def total_errors(self) -> int:
        return len(self.errors) + len(self.batch_errors)

    @property
    def has_errors(self) -> bool:
        return self.total_errors > 0

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _ensure_open(self, operation: str) -> None:
        if self._end_time is not None:
            raise ResultSealedError(operation)

    def record_batch(self, outcome: BatchOutcome) -> None:
        """Fold one batch outcome into the aggregate counters."""
        with self._lock:
            self._ensure_open("record batch outcome")
            self.total_processed += outcome.batch_size
            self.inserted += outcome.inserted
            self.skipped += outcome.skipped
            self.failed += outcome.failed
            self.batch_durations[outcome.batch_number] = outcome.duration_seconds
            if outcome.error is not None:
                self.batch_errors[outcome.batch_number] = outcome.error
            else:
                self.batches_processed += 1

    def add_skipped(self, count: int) -> None:
        with self._lock:
            self._ensure_open("add skipped records")
            self.skipped += count

    def add_warning(self, message: str) -> None:
        with self._lock:
            self._ensure_open("add warning")
            self.warnings.append(message)

    def add_error(self, message: str) -> None:
        with self._lock:
            self._ensure_open("add error")
            self.errors.append(message)

    def set_source_total(self, total: int) -> None:
        with self._lock:
            self._ensure_open("set source total")
            self.total_in_source = total

    def set_target_counts(
        self,
        *,
        before: int | None = None,
        after: int | None = None,
    ) -> None:
        with self._lock:
            self._ensure_open("set target counts")
            if before is not None:
                self.records_before_migration = before
            if after is not None:
                self.records_after_migration = after

    def record_dry_run(self, stats: BatchValidationStats) -> None:
        """Store dry-run statistics; nothing is inserted in a dry run."""
        with self._lock:
            self._ensure_open("record dry run")
            self.validation_stats = stats
            self.total_processed = stats.total_records
            self.failed = stats.invalid_records
            self.skipped = stats.valid_records

    def complete(
        self,
        state: MigrationState,
        error_message: str | None = None,
    ) -> None:
        """
        Seal the result in a terminal state.

        Raises:
            ValueError: If ``state`` is not terminal
            ResultSealedError: If the result is already complete
        """
        if not state.is_terminal:
            raise ValueError(f"Cannot complete a migration result in state {state.value}")
        with self._lock:
            self._ensure_open("complete")
            self.final_state = state
            self.success = state == MigrationState.COMPLETED
            self.error_message = error_message
            self._end_time = datetime.now(UTC)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def _source_label(self) -> str:
        label = self.source_type.value
        if self.source_identifier:
            if self.source_type == SourceType.CSV:
                label += f" (File: {os.path.basename(self.source_identifier)})"
            elif self.source_type == SourceType.ELASTICSEARCH:
                label += f" (Index: {self.source_identifier})"
            else:
                label += f" ({self.source_identifier})"
        return label

    def summary(self) -> str:
        """Short human-readable summary."""
        status = "SUCCESS" if self.success else "FAILED"
        if self.final_state == MigrationState.CANCELLED:
            status = "CANCELLED"

        lines = [
            "Migration Summary:",
            f"Source: {self._source_label()}",
            f"Status: {status}",
            f"Duration: {_format_duration(self.duration)}",
            f"Records Processed: {self.total_processed:,}",
            f"Records Inserted: {self.inserted:,}",
            f"Records Skipped: {self.skipped:,}",
            f"Records Failed: {self.failed:,}",
            f"Success Rate: {self.success_rate:.1f}%",
            f"Records/Second: {self.records_per_second:.2f}",
        ]
        if self.error_message:
            lines.append(f"Error: {self.error_message}")
        if self.has_errors:
            lines.append(f"Errors: {self.total_errors}")
        if self.has_warnings:
            lines.append(f"Warnings: {len(self.warnings)}")
        return "\n".join(lines) + "\n"

    def detailed_report(self) -> str:
        """Summary followed by errors, warnings and per-batch timings."""
        parts = [self.summary(), "--- DETAILED INFORMATION ---"]

        if self.batch_errors:
            parts.append("\nBatch Errors:")
            parts.extend(
                f"  Batch {number}: {error}" for number, error in sorted(self.batch_errors.items())
            )

        if self.errors:
            parts.append("\nGeneral Errors:")
            parts.extend(f"  - {error}" for error in self.errors)

        if self.warnings:
            parts.append("\nWarnings:")
            parts.extend(f"  - {warning}" for warning in self.warnings)

        if self.batch_durations:
            durations = self.batch_durations
            parts.append("\nBatch Performance:")
            parts.append(f"  Average: {sum(durations.values()) / len(durations):.2f}s")
            parts.append(f"  Fastest: {min(durations.values()):.2f}s")
            parts.append(f"  Slowest: {max(durations.values()):.2f}s")
            parts.extend(
                f"  Batch {number}: {seconds:.2f}s"
                for number, seconds in sorted(durations.items())
            )

        return "\n".join(parts) + "\n"


__all__ = [
    "BatchOutcome",
    "MigrationResult",
    "MigrationState",
    "SourceType",
]

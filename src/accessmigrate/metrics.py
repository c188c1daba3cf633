"""
OpenTelemetry metrics for migration jobs.

The metrics gracefully degrade when OpenTelemetry is not installed -
all operations become no-ops without raising errors.

Metrics Exposed:
    - accessmigrate.records.inserted (Counter): Rows written to the target
    - accessmigrate.records.skipped (Counter): Rows skipped as duplicates
    - accessmigrate.records.failed (Counter): Rows rejected by validation or the loader
    - accessmigrate.batches.failed (Counter): Batches that failed as a whole
    - accessmigrate.batch.duration (Histogram): Seconds spent per batch

All metrics carry the ``source_type`` and ``target_table`` attributes.

Example:
    >>> metrics = MigrationMetrics(source_type="csv", target_table="access_logs")
    >>> metrics.record_batch(outcome)
    >>> metrics.snapshot().records_inserted
    1000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from accessmigrate.result import BatchOutcome

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import metrics

    OTEL_METRICS_AVAILABLE = True
except ImportError:
    OTEL_METRICS_AVAILABLE = False
    metrics = None  # type: ignore[assignment]


_meter: Any = None


def _get_meter() -> Any:
    """Get or create the meter instance, or None without OpenTelemetry."""
    global _meter
    if _meter is None and OTEL_METRICS_AVAILABLE and metrics is not None:
        _meter = metrics.get_meter("accessmigrate", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """
    Reset the global meter instance.

    Useful for testing to ensure fresh meter state between tests.
    """
    global _meter
    _meter = None


class NoOpCounter:
    """No-op counter when OpenTelemetry is not available."""

    def add(
        self,
        amount: int | float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


class NoOpHistogram:
    """No-op histogram when OpenTelemetry is not available."""

    def record(
        self,
        value: float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


@dataclass(frozen=True)
class MigrationMetricSnapshot:
    """Values recorded so far, independent of the exporter."""

    records_inserted: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    batches_failed: int = 0
    batch_durations: tuple[float, ...] = ()


@dataclass
class MigrationMetrics:
    """
    Container for migration metric instruments.

    Attributes:
        source_type: Source label attached to every metric
        target_table: Target table label attached to every metric
        enable_metrics: Whether metrics are enabled (default True)
    """

    source_type: str
    target_table: str
    enable_metrics: bool = True

    _inserted_counter: Any = field(default=None, init=False, repr=False)
    _skipped_counter: Any = field(default=None, init=False, repr=False)
    _failed_counter: Any = field(default=None, init=False, repr=False)
    _failed_batches_counter: Any = field(default=None, init=False, repr=False)
    _batch_duration_histogram: Any = field(default=None, init=False, repr=False)

    _inserted: int = field(default=0, init=False, repr=False)
    _skipped: int = field(default=0, init=False, repr=False)
    _failed: int = field(default=0, init=False, repr=False)
    _failed_batches: int = field(default=0, init=False, repr=False)
    _durations: list[float] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.enable_metrics and OTEL_METRICS_AVAILABLE:
            self._setup_metrics()
        else:
            self._setup_noop()

    def _setup_metrics(self) -> None:
        meter = _get_meter()
        if meter is None:
            self._setup_noop()
            return

        self._inserted_counter = meter.create_counter(
            name="accessmigrate.records.inserted",
            unit="records",
            description="Rows written to the target table",
        )
        self._skipped_counter = meter.create_counter(
            name="accessmigrate.records.skipped",
            unit="records",
            description="Rows skipped because they already existed",
        )
        self._failed_counter = meter.create_counter(
            name="accessmigrate.records.failed",
            unit="records",
            description="Rows rejected by validation or by the loader",
        )
        self._failed_batches_counter = meter.create_counter(
            name="accessmigrate.batches.failed",
            unit="batches",
            description="Batches that failed as a whole",
        )
        self._batch_duration_histogram = meter.create_histogram(
            name="accessmigrate.batch.duration",
            unit="s",
            description="Time spent loading each batch in seconds",
        )

    def _setup_noop(self) -> None:
        self._inserted_counter = NoOpCounter()
        self._skipped_counter = NoOpCounter()
        self._failed_counter = NoOpCounter()
        self._failed_batches_counter = NoOpCounter()
        self._batch_duration_histogram = NoOpHistogram()

    def _base_attributes(self) -> dict[str, str]:
        return {
            "source_type": self.source_type,
            "target_table": self.target_table,
        }

    def record_batch(self, outcome: BatchOutcome) -> None:
        """Record the counts and duration of a batch."""
        attrs = self._base_attributes()
        self._inserted_counter.add(outcome.inserted, attrs)
        self._skipped_counter.add(outcome.skipped, attrs)
        self._failed_counter.add(outcome.failed, attrs)
        self._batch_duration_histogram.record(outcome.duration_seconds, attrs)

        self._inserted += outcome.inserted
        self._skipped += outcome.skipped
        self._failed += outcome.failed
        self._durations.append(outcome.duration_seconds)

        if outcome.error is not None:
            self._failed_batches_counter.add(1, attrs)
            self._failed_batches += 1

    def record_duplicates_removed(self, count: int) -> None:
        if count <= 0:
            return
        self._skipped_counter.add(count, self._base_attributes())
        self._skipped += count

    def snapshot(self) -> MigrationMetricSnapshot:
        return MigrationMetricSnapshot(
            records_inserted=self._inserted,
            records_skipped=self._skipped,
            records_failed=self._failed,
            batches_failed=self._failed_batches,
            batch_durations=tuple(self._durations),
        )


__all__ = [
    "OTEL_METRICS_AVAILABLE",
    "MigrationMetricSnapshot",
    "MigrationMetrics",
    "NoOpCounter",
    "NoOpHistogram",
    "reset_meter",
]

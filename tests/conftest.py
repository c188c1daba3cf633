"""
Shared pytest fixtures for the accessmigrate tests.

This module provides:
- Record fixtures (sample_record, sample_records)
- Source and sink fixtures (memory_source, memory_sink)
- Settings fixtures (sequential_settings, lenient_settings)
- Tracing fixture (mock_tracer)
- OpenTelemetry metrics fixtures (metric_reader)
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest

from accessmigrate.config import MigrationSettings
from accessmigrate.observability import MockTracer
from accessmigrate.records import AccessEventRecord
from accessmigrate.sinks import InMemoryRecordSink
from accessmigrate.sources import InMemoryRecordSource
from tests.fixtures import make_record, make_records

# ============================================================================
# OpenTelemetry Metrics Availability Check
# ============================================================================

OTEL_METRICS_AVAILABLE = False
try:
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import InMemoryMetricReader

    OTEL_METRICS_AVAILABLE = True
except ImportError:
    MeterProvider = None  # type: ignore[assignment, misc]
    InMemoryMetricReader = None  # type: ignore[assignment, misc]


skip_if_no_otel_metrics = pytest.mark.skipif(
    not OTEL_METRICS_AVAILABLE,
    reason="OpenTelemetry SDK not installed",
)


# ============================================================================
# Records
# ============================================================================


@pytest.fixture
def sample_record() -> AccessEventRecord:
    """A single valid record."""
    return make_record(1)


@pytest.fixture
def sample_records() -> list[AccessEventRecord]:
    """250 valid records with unique natural keys."""
    return make_records(250)


# ============================================================================
# Sources and sinks
# ============================================================================


@pytest.fixture
def memory_source(sample_records: list[AccessEventRecord]) -> InMemoryRecordSource:
    return InMemoryRecordSource(sample_records, identifier="fixture")


@pytest.fixture
def memory_sink() -> InMemoryRecordSink:
    return InMemoryRecordSink()


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def sequential_settings() -> MigrationSettings:
    """Small batches, stop on first error."""
    return MigrationSettings(batch_size=100, max_concurrency=1)


@pytest.fixture
def lenient_settings() -> MigrationSettings:
    """Small batches that keep going past invalid records and failed batches."""
    return MigrationSettings(batch_size=100, max_concurrency=1, stop_on_error=False)


# ============================================================================
# Observability
# ============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def metric_reader() -> Generator[Any, None, None]:
    """
    Install an in-memory metric reader for the duration of a test.

    Yields the reader so tests can collect exported data points.
    """
    if not OTEL_METRICS_AVAILABLE:
        pytest.skip("OpenTelemetry SDK not installed")

    from accessmigrate import metrics as metrics_module

    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])
    metrics_module.reset_meter()
    original_get_meter = metrics_module._get_meter

    def get_meter() -> Any:
        if metrics_module._meter is None:
            metrics_module._meter = provider.get_meter("accessmigrate")
        return metrics_module._meter

    metrics_module._get_meter = get_meter  # type: ignore[assignment]
    try:
        yield reader
    finally:
        metrics_module._get_meter = original_get_meter  # type: ignore[assignment]
        metrics_module.reset_meter()
        provider.shutdown()

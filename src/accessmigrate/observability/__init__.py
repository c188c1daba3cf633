"""
Observability utilities for accessmigrate.

Tracing is optional: when OpenTelemetry is not installed every tracer is a
NullTracer and spans cost nothing.
"""

from accessmigrate.observability.attributes import (
    ATTR_BATCH_NUMBER,
    ATTR_BATCH_SIZE,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DRY_RUN,
    ATTR_MIGRATION_STATE,
    ATTR_PARALLEL,
    ATTR_RECORD_COUNT,
    ATTR_RECORDS_INSERTED,
    ATTR_SOURCE_IDENTIFIER,
    ATTR_SOURCE_TYPE,
    ATTR_TOTAL_BATCHES,
    ATTR_TRANSPORT,
)
from accessmigrate.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "Tracer",
    "create_tracer",
    "ATTR_BATCH_NUMBER",
    "ATTR_BATCH_SIZE",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_DRY_RUN",
    "ATTR_MIGRATION_STATE",
    "ATTR_PARALLEL",
    "ATTR_RECORD_COUNT",
    "ATTR_RECORDS_INSERTED",
    "ATTR_SOURCE_IDENTIFIER",
    "ATTR_SOURCE_TYPE",
    "ATTR_TOTAL_BATCHES",
    "ATTR_TRANSPORT",
]

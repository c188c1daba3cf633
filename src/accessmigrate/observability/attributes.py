"""
Standard span and metric attributes for accessmigrate.

Attribute names are shared by the orchestrator, sources and sinks so that
spans and metrics can be filtered consistently.

Example:
    >>> with tracer.span(
    ...     "migration.batch",
    ...     {ATTR_BATCH_NUMBER: batch.number, ATTR_BATCH_SIZE: batch.size},
    ... ):
    ...     pass
"""

# =============================================================================
# Job Attributes
# =============================================================================

ATTR_SOURCE_TYPE = "accessmigrate.source.type"
"""Kind of record source ('elasticsearch', 'csv', 'memory')."""

ATTR_SOURCE_IDENTIFIER = "accessmigrate.source.identifier"
"""Index name or file path of the source."""

ATTR_MIGRATION_STATE = "accessmigrate.migration.state"
"""Orchestrator state at the time of the span."""

ATTR_PARALLEL = "accessmigrate.migration.parallel"
"""Whether batches run on the bounded worker pool (bool)."""

ATTR_DRY_RUN = "accessmigrate.migration.dry_run"
"""Whether the job only analyzes a sample (bool)."""

# =============================================================================
# Batch Attributes
# =============================================================================

ATTR_BATCH_NUMBER = "accessmigrate.batch.number"
"""1-based batch sequence number (integer)."""

ATTR_BATCH_SIZE = "accessmigrate.batch.size"
"""Records in the batch (integer)."""

ATTR_TOTAL_BATCHES = "accessmigrate.batch.total"
"""Number of batches in the job (integer)."""

ATTR_RECORD_COUNT = "accessmigrate.record.count"
"""Number of records handled by an operation (integer)."""

ATTR_RECORDS_INSERTED = "accessmigrate.records.inserted"
"""Rows actually written by an insert (integer)."""

# =============================================================================
# Sink Attributes
# =============================================================================

ATTR_TRANSPORT = "accessmigrate.sink.transport"
"""Insert strategy used for a batch ('copy' or 'statement')."""

ATTR_DB_SYSTEM = "db.system"
"""Database system (OpenTelemetry semantic convention)."""

ATTR_DB_NAME = "db.name"
"""Target table name."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation (e.g., 'INSERT', 'DELETE')."""


__all__ = [
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

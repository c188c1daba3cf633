"""
accessmigrate - Move access control event records into PostgreSQL.

This library provides:
- Elasticsearch (scroll) and CSV export sources
- A PostgreSQL sink with COPY and statement insert transports
- Field-level record validation with batch statistics
- A migration orchestrator with sequential and bounded-parallel batch
  execution, duplicate reconciliation, progress/ETA notifications and
  cooperative cancellation
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("accessmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from accessmigrate.batching import Batch, batch_count, split_into_batches
from accessmigrate.config import ElasticsearchSettings, MigrationSettings, PostgreSQLSettings
from accessmigrate.exceptions import (
    BatchFailedError,
    ConnectivityError,
    InvalidRecordsError,
    InvalidStateTransitionError,
    MigrationError,
    ParseThresholdExceededError,
    RecordParseError,
    ResultSealedError,
    RowEncodingError,
    SettingsError,
)
from accessmigrate.orchestrator import MigrationOrchestrator
from accessmigrate.progress import (
    MigrationProgress,
    ProgressStream,
    ProgressTracker,
    estimate_remaining,
    progress_percent,
)
from accessmigrate.records import AccessEventRecord
from accessmigrate.result import BatchOutcome, MigrationResult, MigrationState, SourceType
from accessmigrate.service import (
    analyze_csv,
    analyze_elasticsearch,
    migrate_csv,
    migrate_elasticsearch,
)
from accessmigrate.sinks import (
    BatchInsertResult,
    InMemoryRecordSink,
    PostgreSQLSink,
    RecordSink,
)
from accessmigrate.sources import (
    CsvRecordReader,
    CsvSource,
    ElasticsearchSource,
    InMemoryRecordSource,
    RecordSource,
)
from accessmigrate.validation import (
    BatchValidationStats,
    RecordValidator,
    ValidationOutcome,
    compute_batch_stats,
)

__all__ = [
    "__version__",
    # Records and results
    "AccessEventRecord",
    "Batch",
    "BatchOutcome",
    "MigrationResult",
    "MigrationState",
    "SourceType",
    "batch_count",
    "split_into_batches",
    # Settings
    "ElasticsearchSettings",
    "MigrationSettings",
    "PostgreSQLSettings",
    # Exceptions
    "BatchFailedError",
    "ConnectivityError",
    "InvalidRecordsError",
    "InvalidStateTransitionError",
    "MigrationError",
    "ParseThresholdExceededError",
    "RecordParseError",
    "ResultSealedError",
    "RowEncodingError",
    "SettingsError",
    # Orchestration
    "MigrationOrchestrator",
    "MigrationProgress",
    "ProgressStream",
    "ProgressTracker",
    "estimate_remaining",
    "progress_percent",
    # Entry points
    "analyze_csv",
    "analyze_elasticsearch",
    "migrate_csv",
    "migrate_elasticsearch",
    # Sinks
    "BatchInsertResult",
    "InMemoryRecordSink",
    "PostgreSQLSink",
    "RecordSink",
    # Sources
    "CsvRecordReader",
    "CsvSource",
    "ElasticsearchSource",
    "InMemoryRecordSource",
    "RecordSource",
    # Validation
    "BatchValidationStats",
    "RecordValidator",
    "ValidationOutcome",
    "compute_batch_stats",
]

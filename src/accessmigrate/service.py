"""
Entry points for running migrations from settings.

Each function builds its source (and, for migrations, the PostgreSQL engine
and sink) from settings, runs a MigrationOrchestrator and releases the
engine and client afterwards. Settings that are not passed are loaded from
the environment.

Example:
    >>> result = await migrate_csv("/exports/access_logs.csv")
    >>> print(result.detailed_report())
"""

from __future__ import annotations

import dataclasses
import logging

from accessmigrate.config import ElasticsearchSettings, MigrationSettings, PostgreSQLSettings
from accessmigrate.orchestrator import MigrationOrchestrator, ProgressCallback
from accessmigrate.progress import ProgressStream
from accessmigrate.result import MigrationResult
from accessmigrate.sinks.postgresql import PostgreSQLSink
from accessmigrate.sources.csv_export import CsvRecordReader, CsvSource
from accessmigrate.sources.elasticsearch import ElasticsearchSource
from accessmigrate.sources.interface import RecordSource

logger = logging.getLogger(__name__)


async def _migrate(
    source: RecordSource,
    postgresql: PostgreSQLSettings | None,
    settings: MigrationSettings,
    progress_callback: ProgressCallback | None,
    progress_stream: ProgressStream | None,
    enable_tracing: bool,
) -> MigrationResult:
    try:
        engine = (postgresql or PostgreSQLSettings.from_env()).create_engine()
        try:
            sink = PostgreSQLSink.from_settings(engine, settings, enable_tracing=enable_tracing)
            orchestrator = MigrationOrchestrator(
                source,
                sink,
                settings,
                progress_callback=progress_callback,
                progress_stream=progress_stream,
                enable_tracing=enable_tracing,
            )
            return await orchestrator.run()
        finally:
            await engine.dispose()
    finally:
        await source.close()


async def _analyze(
    source: RecordSource,
    settings: MigrationSettings,
    enable_tracing: bool,
) -> MigrationResult:
    try:
        orchestrator = MigrationOrchestrator(
            source,
            None,
            dataclasses.replace(settings, dry_run=True),
            enable_tracing=enable_tracing,
        )
        return await orchestrator.run()
    finally:
        await source.close()


async def migrate_elasticsearch(
    elasticsearch: ElasticsearchSettings | None = None,
    postgresql: PostgreSQLSettings | None = None,
    settings: MigrationSettings | None = None,
    *,
    progress_callback: ProgressCallback | None = None,
    progress_stream: ProgressStream | None = None,
    enable_tracing: bool = True,
) -> MigrationResult:
    """
    Migrate every document of an Elasticsearch index into PostgreSQL.

    Args:
        elasticsearch: Source settings (from the environment if None)
        postgresql: Target settings (from the environment if None)
        settings: Job settings (from the environment if None)
        progress_callback: Called after every batch
        progress_stream: Receives every progress notification
        enable_tracing: Whether to enable OpenTelemetry tracing

    Returns:
        The sealed MigrationResult
    """
    settings = settings or MigrationSettings.from_env()
    source = ElasticsearchSource.from_settings(
        elasticsearch or ElasticsearchSettings.from_env(),
        enable_tracing=enable_tracing,
    )
    return await _migrate(
        source, postgresql, settings, progress_callback, progress_stream, enable_tracing
    )


async def migrate_csv(
    path: str,
    postgresql: PostgreSQLSettings | None = None,
    settings: MigrationSettings | None = None,
    *,
    reader: CsvRecordReader | None = None,
    progress_callback: ProgressCallback | None = None,
    progress_stream: ProgressStream | None = None,
    enable_tracing: bool = True,
) -> MigrationResult:
    """
    Migrate a CSV export into PostgreSQL.

    Args:
        path: CSV file to read
        reader: Reader to parse the file with; by default one whose
            strictness follows ``settings.stop_on_error``

    See ``migrate_elasticsearch`` for the remaining arguments.
    """
    settings = settings or MigrationSettings.from_env()
    source = CsvSource(path, reader or CsvRecordReader(stop_on_error=settings.stop_on_error))
    return await _migrate(
        source, postgresql, settings, progress_callback, progress_stream, enable_tracing
    )


async def analyze_elasticsearch(
    elasticsearch: ElasticsearchSettings | None = None,
    settings: MigrationSettings | None = None,
    *,
    enable_tracing: bool = True,
) -> MigrationResult:
    """
    Validate a sample of an index without writing anything.

    The returned result carries ``validation_stats`` for the sample.
    """
    settings = settings or MigrationSettings.from_env()
    source = ElasticsearchSource.from_settings(
        elasticsearch or ElasticsearchSettings.from_env(),
        enable_tracing=enable_tracing,
    )
    return await _analyze(source, settings, enable_tracing)


async def analyze_csv(
    path: str,
    settings: MigrationSettings | None = None,
    *,
    reader: CsvRecordReader | None = None,
    enable_tracing: bool = True,
) -> MigrationResult:
    """Validate a sample of a CSV export without writing anything."""
    settings = settings or MigrationSettings.from_env()
    source = CsvSource(path, reader or CsvRecordReader(stop_on_error=settings.stop_on_error))
    return await _analyze(source, settings, enable_tracing)


__all__ = [
    "analyze_csv",
    "analyze_elasticsearch",
    "migrate_csv",
    "migrate_elasticsearch",
]

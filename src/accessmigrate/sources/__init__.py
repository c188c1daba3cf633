"""
Record sources.

- RecordSource: interface used by the orchestrator
- ElasticsearchSource: scroll-based reader over an index
- CsvSource / CsvRecordReader: CSV export reader
- InMemoryRecordSource: list-backed source for tests
"""

from accessmigrate.sources.csv_export import (
    PARSE_ERROR_TOLERANCE,
    CsvAnalysis,
    CsvRecordReader,
    CsvSource,
)
from accessmigrate.sources.elasticsearch import ElasticsearchSource, record_from_hit
from accessmigrate.sources.in_memory import InMemoryRecordSource
from accessmigrate.sources.interface import RecordSource

__all__ = [
    "PARSE_ERROR_TOLERANCE",
    "CsvAnalysis",
    "CsvRecordReader",
    "CsvSource",
    "ElasticsearchSource",
    "InMemoryRecordSource",
    "RecordSource",
    "record_from_hit",
]

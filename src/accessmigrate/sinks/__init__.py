"""
Migration targets.

- RecordSink: interface used by the orchestrator
- PostgreSQLSink: SQLAlchemy/asyncpg implementation
- InMemoryRecordSink: list-backed implementation for tests
- BulkLoader and the COPY / statement insert strategies
- DDL generation for the target table
"""

from accessmigrate.sinks.in_memory import InMemoryRecordSink
from accessmigrate.sinks.interface import BatchInsertResult, RecordSink
from accessmigrate.sinks.loader import (
    BulkLoader,
    CopyInsertStrategy,
    InsertStrategy,
    StatementInsertStrategy,
    encode_row,
    select_strategy,
)
from accessmigrate.sinks.postgresql import PostgreSQLSink
from accessmigrate.sinks.schema import (
    generate_index_ddl,
    generate_schema_statements,
    generate_table_ddl,
)

__all__ = [
    "BatchInsertResult",
    "BulkLoader",
    "CopyInsertStrategy",
    "InMemoryRecordSink",
    "InsertStrategy",
    "PostgreSQLSink",
    "RecordSink",
    "StatementInsertStrategy",
    "encode_row",
    "generate_index_ddl",
    "generate_schema_statements",
    "generate_table_ddl",
    "select_strategy",
]

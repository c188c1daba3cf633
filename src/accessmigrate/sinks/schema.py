"""
Schema generation for the access event target table.

Generates CREATE TABLE and CREATE INDEX statements from the
AccessEventRecord field definitions. Statements are returned as a list so
that they can be executed one at a time, which asyncpg requires.

Example:
    >>> from accessmigrate.sinks.schema import generate_table_ddl
    >>> print(generate_table_ddl("access_logs"))
    CREATE TABLE IF NOT EXISTS access_logs (
        id SERIAL PRIMARY KEY,
        access_log_flag BOOLEAN NOT NULL DEFAULT FALSE,
        area_name TEXT,
        ...
    );
"""

from __future__ import annotations

import types
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Union, get_args, get_origin

from pydantic.fields import FieldInfo

from accessmigrate.config import is_valid_identifier
from accessmigrate.exceptions import SettingsError
from accessmigrate.records import AccessEventRecord

POSTGRESQL_TYPE_MAP: dict[type, str] = {
    str: "TEXT",
    int: "INTEGER",
    float: "DOUBLE PRECISION",
    Decimal: "DECIMAL(18, 6)",
    bool: "BOOLEAN",
    datetime: "TIMESTAMP WITH TIME ZONE",
    date: "DATE",
}

# Single and composite lookup indexes on the target table
INDEXED_COLUMNS: tuple[tuple[str, ...], ...] = (
    ("event_id",),
    ("stadium_id",),
    ("timestamp",),
    ("transaction_id",),
    ("gate_name",),
    ("result",),
    ("nationality_id",),
    ("source_index",),
    ("created_at",),
    ("event_id", "stadium_id"),
    ("timestamp", "result"),
)


def _check_table_name(table_name: str) -> None:
    if not is_valid_identifier(table_name):
        raise SettingsError(f"table_name must be a plain SQL identifier, got {table_name!r}")


def generate_table_ddl(table_name: str, if_not_exists: bool = True) -> str:
    """
    Generate CREATE TABLE SQL for the access event table.

    Args:
        table_name: Target table name (validated as an identifier)
        if_not_exists: Include IF NOT EXISTS clause (default True)

    Returns:
        CREATE TABLE SQL statement

    Raises:
        SettingsError: If the table name is not a plain identifier
    """
    _check_table_name(table_name)

    columns = [
        _generate_column(field_name, field_info)
        for field_name, field_info in AccessEventRecord.model_fields.items()
    ]

    exists_clause = "IF NOT EXISTS " if if_not_exists else ""
    columns_sql = ",\n    ".join(columns)

    return f"""CREATE TABLE {exists_clause}{table_name} (
    {columns_sql}
);"""


def generate_index_ddl(table_name: str) -> list[str]:
    """
    Generate CREATE INDEX statements for the access event table.

    Returns:
        List of CREATE INDEX SQL statements, one per entry in INDEXED_COLUMNS
    """
    _check_table_name(table_name)

    indexes = []
    for fields in INDEXED_COLUMNS:
        idx_name = f"idx_{table_name}_{'_'.join(fields)}"
        fields_sql = ", ".join(fields)
        indexes.append(f"CREATE INDEX IF NOT EXISTS {idx_name} ON {table_name}({fields_sql});")
    return indexes


def generate_schema_statements(table_name: str) -> list[str]:
    """Table creation followed by its indexes."""
    return [generate_table_ddl(table_name), *generate_index_ddl(table_name)]


def _generate_column(field_name: str, field_info: FieldInfo) -> str:
    python_type = _extract_type(field_info.annotation)
    sql_type = _get_custom_sql_type(field_info) or POSTGRESQL_TYPE_MAP.get(python_type, "TEXT")

    if field_name == "id":
        return f"id {sql_type} PRIMARY KEY"

    parts = [field_name, sql_type]

    # Non-optional fields always carry a value (default or factory)
    if not _is_optional(field_info.annotation):
        parts.append("NOT NULL")

    if field_info.default is not None:
        default_value = _format_default(field_info.default)
        if default_value is not None:
            parts.append(f"DEFAULT {default_value}")

    return " ".join(parts)


def _extract_type(annotation: Any) -> type:
    """
    Extract the base type from a type annotation.

    Handles ``T | None`` and ``Optional[T]`` by returning ``T``.
    """
    if annotation is None:
        return str

    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        for arg in get_args(annotation):
            if arg is not type(None):
                return _extract_type(arg)

    return annotation if isinstance(annotation, type) else type(annotation)


def _is_optional(annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return type(None) in get_args(annotation)
    return False


def _format_default(value: Any) -> str | None:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        escaped = value.replace("'", "''")
        return f"'{escaped}'"
    return None


def _get_custom_sql_type(field_info: FieldInfo) -> str | None:
    extra = field_info.json_schema_extra
    if isinstance(extra, dict):
        sql_type = extra.get("sql_type")
        if isinstance(sql_type, str):
            return sql_type
    return None


__all__ = [
    "INDEXED_COLUMNS",
    "POSTGRESQL_TYPE_MAP",
    "generate_index_ddl",
    "generate_schema_statements",
    "generate_table_ddl",
]

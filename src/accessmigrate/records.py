"""
Access event record model.

AccessEventRecord is the transfer unit moved from a source into the target
table. Every descriptive field is optional because exports from the access
control system are sparse; only the natural key (``source_id``, the document
id in the originating index) is needed for a record to be migratable.

Column order for inserts is fixed by TARGET_COLUMNS and matches the field
declaration order below.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

NATURAL_KEY = "source_id"


class AccessEventRecord(BaseModel):
    """
    A single access control event.

    Attributes:
        id: Target identity, assigned by the database (None before insert)
        source_id: Natural key; the document id in the source system
        source_index: Index or export the record came from
        source_score: Relevance score reported by the source, if any
        created_at: When the record was created for migration

    Example:
        >>> record = AccessEventRecord(source_id="a1", event_id=7, gate_name="G4")
        >>> record.is_migratable
        True
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )

    id: int | None = Field(
        default=None,
        description="Database identity",
        json_schema_extra={"sql_type": "SERIAL"},
    )

    access_log_flag: bool = Field(default=False, description="Whether the gate logged access")
    area_name: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    event_id: int | None = Field(default=None, description="Event identifier")
    event_name: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    gate_name: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    gks_type: str | None = Field(
        default=None,
        description="Turnstile device vendor",
        json_schema_extra={"sql_type": "TEXT"},
    )
    image: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    ip: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    is_accreditation: bool = Field(default=False)
    nationality_id: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    passage_duration: Decimal | None = Field(
        default=None,
        description="Seconds spent passing the gate",
        json_schema_extra={"sql_type": "DECIMAL(10,2)"},
    )
    port: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    reader_name: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    result: str | None = Field(
        default=None,
        description="Gate decision (PASSED, DENIED, ...)",
        json_schema_extra={"sql_type": "TEXT"},
    )
    serial_number: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    stadium_id: int | None = Field(default=None)
    timestamp: datetime | None = Field(default=None)
    transaction_id: int | None = Field(default=None)
    transaction_time: datetime | None = Field(default=None)

    source_id: str | None = Field(
        default=None,
        description="Natural key used to detect duplicates across runs",
        json_schema_extra={"sql_type": "TEXT UNIQUE"},
    )
    source_index: str | None = Field(default=None, json_schema_extra={"sql_type": "TEXT"})
    source_score: Decimal | None = Field(
        default=None,
        json_schema_extra={"sql_type": "DECIMAL"},
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When this record was created",
        json_schema_extra={"sql_type": "TIMESTAMP WITH TIME ZONE DEFAULT NOW()"},
    )

    @property
    def is_migratable(self) -> bool:
        """True when the natural key is present and non-blank."""
        return bool(self.source_id and self.source_id.strip())

    def to_row(self) -> tuple[Any, ...]:
        """Values in TARGET_COLUMNS order."""
        return tuple(getattr(self, column) for column in TARGET_COLUMNS)

    def to_params(self) -> dict[str, Any]:
        """Values keyed by column name, for bound statements."""
        return {column: getattr(self, column) for column in TARGET_COLUMNS}


# All persisted columns except the database-assigned identity
TARGET_COLUMNS: tuple[str, ...] = tuple(
    name for name in AccessEventRecord.model_fields if name != "id"
)


__all__ = [
    "AccessEventRecord",
    "NATURAL_KEY",
    "TARGET_COLUMNS",
]

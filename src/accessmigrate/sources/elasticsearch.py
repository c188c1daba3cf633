"""
Elasticsearch source.

Reads every document of an index with the scroll API and maps each hit to
an AccessEventRecord. Documents exported by the access control system
often wrap scalar values in single-element arrays; the first element is
used in that case.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from accessmigrate.observability import (
    ATTR_RECORD_COUNT,
    ATTR_SOURCE_IDENTIFIER,
    ATTR_SOURCE_TYPE,
    Tracer,
    create_tracer,
)
from accessmigrate.records import AccessEventRecord
from accessmigrate.result import SourceType
from accessmigrate.sources.csv_export import parse_datetime
from accessmigrate.sources.interface import RecordSource

if TYPE_CHECKING:
    from elasticsearch import AsyncElasticsearch

    from accessmigrate.config import ElasticsearchSettings

logger = logging.getLogger(__name__)

HEALTHY_CLUSTER_STATUSES = frozenset({"green", "yellow"})

# Document field -> record field
DOCUMENT_FIELD_MAPPING: Mapping[str, str] = {
    "accessLog": "access_log_flag",
    "areaName": "area_name",
    "eventId": "event_id",
    "eventName": "event_name",
    "gateName": "gate_name",
    "gksType": "gks_type",
    "image": "image",
    "ip": "ip",
    "isAccreditation": "is_accreditation",
    "nationalityId": "nationality_id",
    "passageDuration": "passage_duration",
    "port": "port",
    "readerName": "reader_name",
    "result": "result",
    "serialNumber": "serial_number",
    "stadiumId": "stadium_id",
    "timestamp": "timestamp",
    "transactionId": "transaction_id",
    "transactionTime": "transaction_time",
}

_DATETIME_FIELDS = frozenset({"timestamp", "transaction_time"})
_TEXT_FIELDS = frozenset({"port", "nationality_id", "serial_number", "ip"})


def _first_value(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def record_from_hit(hit: Mapping[str, Any]) -> AccessEventRecord:
    """
    Convert a search hit to a record.

    Raises:
        ValueError: If the hit has no ``_id`` or a field cannot be converted
    """
    source_id = hit.get("_id")
    if not source_id:
        raise ValueError("hit has no _id")

    document: Mapping[str, Any] = hit.get("_source") or {}
    values: dict[str, Any] = {
        "source_id": str(source_id),
        "source_index": hit.get("_index"),
    }

    score = hit.get("_score")
    if score is not None:
        try:
            values["source_score"] = Decimal(str(score))
        except InvalidOperation:
            raise ValueError(f"invalid _score {score!r}") from None

    for document_field, record_field in DOCUMENT_FIELD_MAPPING.items():
        value = _first_value(document.get(document_field))
        if value is None or value == "":
            continue
        if record_field in _DATETIME_FIELDS and isinstance(value, (str, int)):
            value = parse_datetime(str(value))
        elif record_field in _TEXT_FIELDS:
            value = str(value)
        values[record_field] = value

    # pydantic raises ValidationError, a ValueError subclass, on bad values
    return AccessEventRecord(**values)


class ElasticsearchSource(RecordSource):
    """
    RecordSource over an Elasticsearch index.

    Args:
        client: AsyncElasticsearch client (owned by the caller unless
            created with ``from_settings``)
        index_name: Index to read
        page_size: Documents per scroll page
        scroll_timeout: Scroll context keep-alive (e.g. "10m")
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing

    Example:
        >>> source = ElasticsearchSource.from_settings(ElasticsearchSettings.from_env())
        >>> try:
        ...     records = await source.fetch_all()
        ... finally:
        ...     await source.close()
    """

    source_type = SourceType.ELASTICSEARCH

    def __init__(
        self,
        client: AsyncElasticsearch,
        index_name: str,
        *,
        page_size: int = 1000,
        scroll_timeout: str = "10m",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._client = client
        self._index_name = index_name
        self._page_size = page_size
        self._scroll_timeout = scroll_timeout
        self._owns_client = False
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_settings(
        cls,
        settings: ElasticsearchSettings,
        *,
        enable_tracing: bool = True,
    ) -> ElasticsearchSource:
        """Create a source with its own client; ``close`` disposes it."""
        from elasticsearch import AsyncElasticsearch

        client_config: dict[str, Any] = {
            "hosts": list(settings.hosts),
            "request_timeout": settings.request_timeout,
            "verify_certs": settings.verify_certs,
        }
        if settings.api_key:
            client_config["api_key"] = settings.api_key
        elif settings.basic_auth:
            client_config["basic_auth"] = settings.basic_auth

        source = cls(
            AsyncElasticsearch(**client_config),
            settings.index_name,
            page_size=settings.page_size,
            scroll_timeout=settings.scroll_timeout,
            enable_tracing=enable_tracing,
        )
        source._owns_client = True
        return source

    @property
    def identifier(self) -> str:
        return self._index_name

    async def test_connection(self) -> bool:
        try:
            reachable = bool(await self._client.ping())
        except Exception as e:
            logger.error("Elasticsearch ping failed: %s", e)
            return False
        if reachable:
            logger.info("Elasticsearch connection established")
        else:
            logger.error("Elasticsearch ping returned no response")
        return reachable

    async def check_health(self) -> bool:
        try:
            response = await self._client.cluster.health()
            status = str(response["status"]).lower()
        except Exception as e:
            logger.warning("Elasticsearch cluster health check failed: %s", e)
            return False
        logger.debug("Elasticsearch cluster health: %s", status)
        return status in HEALTHY_CLUSTER_STATUSES

    async def count(self) -> int:
        response = await self._client.count(index=self._index_name)
        total = int(response["count"])
        logger.info("Index %s holds %d documents", self._index_name, total)
        return total

    async def fetch_all(self) -> list[AccessEventRecord]:
        return await self._scroll(limit=None)

    async def fetch_sample(self, limit: int) -> list[AccessEventRecord]:
        return await self._scroll(limit=limit)

    async def _scroll(self, limit: int | None) -> list[AccessEventRecord]:
        started = time.monotonic()
        records: list[AccessEventRecord] = []
        skipped = 0
        page_size = self._page_size if limit is None else min(self._page_size, limit)

        with self._tracer.span(
            "source.fetch_all",
            {
                ATTR_SOURCE_TYPE: self.source_type.value,
                ATTR_SOURCE_IDENTIFIER: self._index_name,
            },
        ) as span:
            response = await self._client.search(
                index=self._index_name,
                query={"match_all": {}},
                sort=["_doc"],
                scroll=self._scroll_timeout,
                size=page_size,
            )
            scroll_id = response["_scroll_id"]
            hits = response["hits"]["hits"]
            page = 0

            try:
                while hits:
                    page += 1
                    for hit in hits:
                        try:
                            records.append(record_from_hit(hit))
                        except ValueError as e:
                            skipped += 1
                            logger.warning(
                                "Skipping document %s: %s",
                                hit.get("_id"),
                                e,
                            )
                    logger.debug("Scroll page %d: %d documents", page, len(hits))

                    if limit is not None and len(records) >= limit:
                        records = records[:limit]
                        break

                    response = await self._client.scroll(
                        scroll_id=scroll_id,
                        scroll=self._scroll_timeout,
                    )
                    scroll_id = response["_scroll_id"]
                    hits = response["hits"]["hits"]
            finally:
                if scroll_id:
                    await self._clear_scroll(scroll_id)

            if span is not None:
                span.set_attribute(ATTR_RECORD_COUNT, len(records))

        logger.info(
            "Fetched %d records from index %s in %.2fs (%d documents skipped)",
            len(records),
            self._index_name,
            time.monotonic() - started,
            skipped,
        )
        return records

    async def _clear_scroll(self, scroll_id: str) -> None:
        # the scroll context expires on the server after scroll_timeout anyway
        try:
            await self._client.clear_scroll(scroll_id=scroll_id)
        except Exception as e:
            logger.warning(
                "Failed to clear scroll context on index %s: %s",
                self._index_name,
                e,
                extra={"index": self._index_name},
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()


__all__ = [
    "DOCUMENT_FIELD_MAPPING",
    "ElasticsearchSource",
    "record_from_hit",
]

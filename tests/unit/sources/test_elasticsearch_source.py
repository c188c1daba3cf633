"""
Unit tests for the Elasticsearch source.

The AsyncElasticsearch client is replaced by a MagicMock whose API methods
are AsyncMocks returning plain dict responses.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from accessmigrate.config import ElasticsearchSettings
from accessmigrate.result import SourceType
from accessmigrate.sources import ElasticsearchSource, record_from_hit


def make_hit(index: int, **document):
    source = {
        "accessLog": True,
        "eventId": 100 + index,
        "gateName": f"Gate {index}",
        "gksType": "HIKVISION",
        "port": 8080,
        "timestamp": "2024-05-18T19:30:00Z",
    }
    source.update(document)
    return {"_id": f"doc-{index}", "_index": "access_logs", "_score": 1.0, "_source": source}


def page(hits, scroll_id="scroll-1"):
    return {"_scroll_id": scroll_id, "hits": {"hits": hits}}


def make_client(*pages):
    client = MagicMock()
    client.search = AsyncMock(return_value=pages[0])
    client.scroll = AsyncMock(side_effect=list(pages[1:]) + [page([])])
    client.clear_scroll = AsyncMock()
    client.count = AsyncMock(return_value={"count": 42})
    client.ping = AsyncMock(return_value=True)
    client.cluster.health = AsyncMock(return_value={"status": "green"})
    client.close = AsyncMock()
    return client


class TestRecordFromHit:
    """Tests for mapping search hits to records."""

    def test_maps_metadata_and_fields(self):
        record = record_from_hit(make_hit(3))

        assert record.source_id == "doc-3"
        assert record.source_index == "access_logs"
        assert record.source_score == Decimal("1.0")
        assert record.access_log_flag is True
        assert record.event_id == 103
        assert record.gate_name == "Gate 3"
        assert record.port == "8080"
        assert record.timestamp == datetime(2024, 5, 18, 19, 30, tzinfo=UTC)

    def test_first_element_of_arrays(self):
        record = record_from_hit(make_hit(1, gateName=["North", "South"], stadiumId=[7]))

        assert record.gate_name == "North"
        assert record.stadium_id == 7

    def test_empty_values_are_skipped(self):
        record = record_from_hit(make_hit(1, eventName="", areaName=None, readerName=[]))

        assert record.event_name is None
        assert record.area_name is None
        assert record.reader_name is None

    def test_epoch_millis_timestamp(self):
        record = record_from_hit(make_hit(1, transactionTime=1716060600000))
        assert record.transaction_time == datetime(2024, 5, 18, 19, 30, tzinfo=UTC)

    def test_missing_id_raises(self):
        hit = make_hit(1)
        del hit["_id"]

        with pytest.raises(ValueError, match="_id"):
            record_from_hit(hit)

    def test_unparsable_timestamp_raises(self):
        with pytest.raises(ValueError):
            record_from_hit(make_hit(1, timestamp="sometime"))

    def test_missing_source_document(self):
        record = record_from_hit({"_id": "doc-9", "_index": "access_logs", "_score": None})

        assert record.source_id == "doc-9"
        assert record.source_score is None


class TestElasticsearchSourceStatus:
    """Tests for connection, health and count."""

    @pytest.mark.asyncio
    async def test_identifier_and_type(self):
        source = ElasticsearchSource(make_client(page([])), "access_logs")

        assert source.identifier == "access_logs"
        assert source.source_type == SourceType.ELASTICSEARCH

    @pytest.mark.asyncio
    async def test_connection_ok(self):
        assert await ElasticsearchSource(make_client(page([])), "idx").test_connection()

    @pytest.mark.asyncio
    async def test_connection_failure_returns_false(self):
        client = make_client(page([]))
        client.ping = AsyncMock(side_effect=ConnectionError("refused"))

        assert not await ElasticsearchSource(client, "idx").test_connection()

    @pytest.mark.asyncio
    async def test_ping_false(self):
        client = make_client(page([]))
        client.ping = AsyncMock(return_value=False)

        assert not await ElasticsearchSource(client, "idx").test_connection()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "healthy"), [("green", True), ("yellow", True), ("red", False)]
    )
    async def test_health(self, status, healthy):
        client = make_client(page([]))
        client.cluster.health = AsyncMock(return_value={"status": status})

        assert await ElasticsearchSource(client, "idx").check_health() is healthy

    @pytest.mark.asyncio
    async def test_health_error_is_unhealthy(self):
        client = make_client(page([]))
        client.cluster.health = AsyncMock(side_effect=TimeoutError())

        assert not await ElasticsearchSource(client, "idx").check_health()

    @pytest.mark.asyncio
    async def test_count(self):
        client = make_client(page([]))

        assert await ElasticsearchSource(client, "idx").count() == 42
        client.count.assert_awaited_once_with(index="idx")


class TestElasticsearchSourceScroll:
    """Tests for scroll pagination."""

    @pytest.mark.asyncio
    async def test_fetch_all_follows_scroll_pages(self):
        client = make_client(
            page([make_hit(1), make_hit(2)], "s1"),
            page([make_hit(3)], "s2"),
        )
        source = ElasticsearchSource(client, "access_logs", page_size=2, scroll_timeout="5m")

        records = await source.fetch_all()

        assert [r.source_id for r in records] == ["doc-1", "doc-2", "doc-3"]
        client.search.assert_awaited_once_with(
            index="access_logs",
            query={"match_all": {}},
            sort=["_doc"],
            scroll="5m",
            size=2,
        )
        assert client.scroll.await_count == 2
        client.scroll.assert_any_await(scroll_id="s1", scroll="5m")
        client.scroll.assert_any_await(scroll_id="s2", scroll="5m")

    @pytest.mark.asyncio
    async def test_scroll_context_is_cleared(self):
        client = make_client(page([make_hit(1)], "s1"))

        await ElasticsearchSource(client, "idx").fetch_all()

        client.clear_scroll.assert_awaited_once_with(scroll_id="scroll-1")

    @pytest.mark.asyncio
    async def test_scroll_context_cleared_on_error(self):
        client = make_client(page([make_hit(1)], "s1"))
        client.scroll = AsyncMock(side_effect=ConnectionError("lost"))

        with pytest.raises(ConnectionError):
            await ElasticsearchSource(client, "idx").fetch_all()

        client.clear_scroll.assert_awaited_once_with(scroll_id="s1")

    @pytest.mark.asyncio
    async def test_clear_scroll_failure_keeps_fetched_records(self, caplog):
        client = make_client(page([make_hit(1), make_hit(2)], "s1"))
        client.clear_scroll = AsyncMock(side_effect=ConnectionError("node unreachable"))

        records = await ElasticsearchSource(client, "idx").fetch_all()

        assert [r.source_id for r in records] == ["doc-1", "doc-2"]
        assert "Failed to clear scroll context on index idx" in caplog.text

    @pytest.mark.asyncio
    async def test_clear_scroll_failure_does_not_mask_scroll_error(self):
        client = make_client(page([make_hit(1)], "s1"))
        client.scroll = AsyncMock(side_effect=TimeoutError("scroll timed out"))
        client.clear_scroll = AsyncMock(side_effect=ConnectionError("node unreachable"))

        with pytest.raises(TimeoutError, match="scroll timed out"):
            await ElasticsearchSource(client, "idx").fetch_all()

    @pytest.mark.asyncio
    async def test_bad_documents_are_skipped(self):
        bad = make_hit(2, timestamp="not a date")
        client = make_client(page([make_hit(1), bad, make_hit(3)]))

        records = await ElasticsearchSource(client, "idx").fetch_all()

        assert [r.source_id for r in records] == ["doc-1", "doc-3"]

    @pytest.mark.asyncio
    async def test_empty_index(self):
        client = make_client(page([]))

        assert await ElasticsearchSource(client, "idx").fetch_all() == []
        client.scroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_sample_stops_early(self):
        client = make_client(
            page([make_hit(i) for i in range(1, 4)], "s1"),
            page([make_hit(i) for i in range(4, 7)], "s2"),
        )
        source = ElasticsearchSource(client, "idx", page_size=3)

        records = await source.fetch_sample(4)

        assert [r.source_id for r in records] == ["doc-1", "doc-2", "doc-3", "doc-4"]
        assert client.scroll.await_count == 1

    @pytest.mark.asyncio
    async def test_sample_page_size_is_capped_by_limit(self):
        client = make_client(page([make_hit(1), make_hit(2)]))

        await ElasticsearchSource(client, "idx", page_size=1000).fetch_sample(2)

        assert client.search.await_args.kwargs["size"] == 2
        client.scroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_records_span(self, mock_tracer):
        client = make_client(page([make_hit(1)]))
        source = ElasticsearchSource(client, "idx", tracer=mock_tracer)

        await source.fetch_all()

        assert "source.fetch_all" in mock_tracer.span_names


class TestElasticsearchSourceLifecycle:
    """Tests for client ownership."""

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = make_client(page([]))

        await ElasticsearchSource(client, "idx").close()

        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_from_settings_owns_client(self):
        settings = ElasticsearchSettings(
            hosts=("http://es:9200",),
            index_name="gate_logs",
            api_key="key",
            page_size=500,
        )
        client = make_client(page([]))

        with patch("elasticsearch.AsyncElasticsearch", return_value=client) as factory:
            source = ElasticsearchSource.from_settings(settings, enable_tracing=False)
            await source.close()

        factory.assert_called_once_with(
            hosts=["http://es:9200"],
            request_timeout=300,
            verify_certs=True,
            api_key="key",
        )
        assert source.identifier == "gate_logs"
        client.close.assert_awaited_once()

"""
Unit tests for the connection handling helper.

Covers execute_with_connection with:
- An AsyncEngine in transactional mode (begin) and bare mode (connect)
- An AsyncConnection with no open transaction (one transaction per use)
- An AsyncConnection inside a caller transaction (one savepoint per use)
- Commit on success and rollback on error via the begin context
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from accessmigrate._connection import execute_with_connection
from tests.fixtures import make_async_connection

ENGINE_CHECK = "accessmigrate._connection.isinstance"


def make_engine(connection=None):
    """MagicMock engine whose begin()/connect() yield ``connection``."""
    connection = connection or AsyncMock()
    engine = MagicMock()
    for method in ("begin", "connect"):
        context = AsyncMock()
        context.__aenter__.return_value = connection
        context.__aexit__.return_value = None
        getattr(engine, method).return_value = context
    return engine, connection


class TestEngineInput:
    """AsyncEngine inputs open a fresh connection per use."""

    @pytest.mark.asyncio
    async def test_transactional_uses_begin(self):
        engine, connection = make_engine()

        with patch(ENGINE_CHECK, side_effect=lambda obj, cls: obj is engine):
            async with execute_with_connection(engine, transactional=True) as conn:
                assert conn is connection

        engine.begin.assert_called_once()
        engine.connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_bare_uses_connect(self):
        engine, connection = make_engine()

        with patch(ENGINE_CHECK, side_effect=lambda obj, cls: obj is engine):
            async with execute_with_connection(engine, transactional=False) as conn:
                assert conn is connection

        engine.connect.assert_called_once()
        engine.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_default_is_transactional(self):
        engine, _ = make_engine()

        with patch(ENGINE_CHECK, side_effect=lambda obj, cls: obj is engine):
            async with execute_with_connection(engine):
                pass

        engine.begin.assert_called_once()

    @pytest.mark.asyncio
    async def test_commit_path_exits_cleanly(self):
        engine, connection = make_engine()
        exits = []

        async def record_exit(self, exc_type, exc_val, exc_tb):
            exits.append(exc_type)
            return None

        engine.begin.return_value.__aexit__ = record_exit

        with patch(ENGINE_CHECK, side_effect=lambda obj, cls: obj is engine):
            async with execute_with_connection(engine) as conn:
                await conn.execute("INSERT INTO access_logs (source_id) VALUES ('doc-1')")

        assert exits == [None]
        connection.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_error_reaches_transaction_exit(self):
        engine, _ = make_engine()
        exits = []

        async def record_exit(self, exc_type, exc_val, exc_tb):
            exits.append((exc_type, exc_val))
            return False

        engine.begin.return_value.__aexit__ = record_exit
        error = RuntimeError("copy failed")

        with (
            patch(ENGINE_CHECK, side_effect=lambda obj, cls: obj is engine),
            pytest.raises(RuntimeError, match="copy failed"),
        ):
            async with execute_with_connection(engine):
                raise error

        assert exits == [(RuntimeError, error)]

    @pytest.mark.asyncio
    async def test_each_use_gets_a_new_connection(self):
        engine = MagicMock()
        opened = []

        def open_transaction():
            connection = AsyncMock()
            opened.append(connection)
            context = AsyncMock()
            context.__aenter__.return_value = connection
            context.__aexit__.return_value = None
            return context

        engine.begin.side_effect = open_transaction

        with patch(ENGINE_CHECK, side_effect=lambda obj, cls: obj is engine):
            async with execute_with_connection(engine) as first:
                pass
            async with execute_with_connection(engine) as second:
                pass

        assert first is opened[0]
        assert second is opened[1]
        assert first is not second


class TestConnectionInput:
    """AsyncConnection inputs get a transaction or savepoint per transactional use."""

    @pytest.mark.asyncio
    async def test_bare_use_is_passed_through(self):
        connection = make_async_connection()

        async with execute_with_connection(connection, transactional=False) as conn:
            assert conn is connection
            await conn.execute("SELECT 1")

        connection.begin.assert_not_called()
        connection.begin_nested.assert_not_called()
        connection.execute.assert_awaited_once_with("SELECT 1")

    @pytest.mark.asyncio
    async def test_idle_connection_gets_a_transaction_per_use(self):
        connection = make_async_connection(in_transaction=False)

        for _ in range(2):
            async with execute_with_connection(connection) as conn:
                assert conn is connection

        assert connection.begin.call_count == 2
        connection.begin_nested.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_transaction_gets_a_savepoint_per_use(self):
        connection = make_async_connection(in_transaction=True)

        for _ in range(2):
            async with execute_with_connection(connection) as conn:
                assert conn is connection

        assert connection.begin_nested.call_count == 2
        connection.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_rolls_back_the_savepoint(self):
        connection = make_async_connection(in_transaction=True)
        error = RuntimeError("duplicate staging table")

        with pytest.raises(RuntimeError, match="duplicate staging table"):
            async with execute_with_connection(connection):
                raise error

        savepoint = connection.begin_nested.return_value
        savepoint.__aexit__.assert_awaited_once()
        assert savepoint.__aexit__.await_args.args[:2] == (RuntimeError, error)

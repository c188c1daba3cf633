"""
Connection handling for sink operations.

Sinks accept either an AsyncEngine or an AsyncConnection, and every
transactional use of ``execute_with_connection`` is one unit of work
(one batch, one DDL run) that commits or rolls back on its own:

- an AsyncEngine opens a new connection and transaction per use, so a
  failed batch never leaves a broken connection behind for the next one;
- an AsyncConnection with no open transaction gets one per use;
- an AsyncConnection already inside a caller's transaction gets a
  savepoint per use, so a failed batch is rolled back to the savepoint
  and the caller's transaction stays usable.

Non-transactional uses (reads) get a bare connection.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection for executing statements.

    Args:
        conn: Database connection or engine
        transactional: If True, the block runs in its own transaction (or
            savepoint, inside a caller's transaction) that commits on
            success and rolls back on error. If False, statements run on a
            bare connection.

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(query, params)
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    elif not transactional:
        yield conn
    elif conn.in_transaction():
        async with conn.begin_nested():
            yield conn
    else:
        async with conn.begin():
            yield conn

"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that every mirror target must
implement.  A client owns a pooled engine for one database (primary or
backup) and hands out scoped connections.

Usage:
    from db_mirror.adapters.base import DatabaseClient

    async def count_users(client: DatabaseClient) -> int:
        async with client.connect() as conn:
            result = await conn.execute(text("SELECT count(*) FROM users"))
            return result.scalar()
"""

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncConnection

from db_mirror.dialects import Dialect


class DatabaseClient(Protocol):
    """Database client interface used by the mirror engine.

    Attributes:
        name: Label used in log messages (``"primary"``, ``"backup"``).
        dialect: SQL generator for the client's engine.
    """

    name: str
    dialect: Dialect

    def connect(self) -> AbstractAsyncContextManager[AsyncConnection]:
        """Check out a pooled connection for the duration of an ``async with``.

        The connection is returned to the pool when the block exits, even
        if it raised.  Uncommitted work is rolled back on release.

        Example:
            async with client.connect() as conn:
                await conn.execute(text("SELECT 1"))
        """
        ...

    async def test_connection(self) -> bool:
        """Run a trivial round-trip query.

        Returns:
            ``True`` if the database answered.

        Raises:
            Exception: If the database connection fails.
        """
        ...

    async def close(self) -> None:
        """Dispose of the connection pool."""
        ...

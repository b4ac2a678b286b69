"""Database connection management.

This module provides the asyncpg connection pool and the dedicated
connections used for LISTEN/NOTIFY change feeds.
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Awaitable, Callable, Optional

import asyncpg

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[asyncpg.Connection, int, str, str], None]


async def _init_connection(connection: asyncpg.Connection) -> None:
    """Decode jsonb columns to Python objects."""
    await connection.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


class DatabaseConnection:
    """Database connection manager."""

    def __init__(self, connection_string: str, pool_size: int = 5):
        self.connection_string = connection_string
        self.pool_size = pool_size
        self._pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        """Initialize database connection pool."""
        try:
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=60,
                init=_init_connection,
                server_settings={"timezone": "UTC"},
            )
            logger.info(f"Database pool initialized, size: {self.pool_size}")
        except Exception as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise

    async def close(self) -> None:
        """Close database connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        """Get connection pool."""
        if not self._pool:
            raise RuntimeError("Database pool is not initialized")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncContextManager[asyncpg.Connection]:
        """Acquire database connection from pool."""
        async with self.pool.acquire() as connection:
            yield connection

    async def execute(self, query: str, *args) -> str:
        """Execute SQL command."""
        async with self.acquire() as connection:
            return await connection.execute(query, *args)

    async def fetch(self, query: str, *args) -> list:
        """Fetch multiple rows."""
        async with self.acquire() as connection:
            return await connection.fetch(query, *args)

    async def fetchval(self, query: str, *args):
        """Fetch single value."""
        async with self.acquire() as connection:
            return await connection.fetchval(query, *args)

    async def listen(self, channel: str, handler: NotificationHandler) -> Callable[[], Awaitable[None]]:
        """
        Hold a dedicated connection listening on ``channel``.

        Returns:
            A coroutine function that stops listening and releases the
            connection.
        """
        connection = await self.pool.acquire()
        try:
            await connection.add_listener(channel, handler)
        except Exception:
            await self.pool.release(connection)
            raise

        logger.debug(f"Listening on channel {channel}")

        async def stop() -> None:
            try:
                await connection.remove_listener(channel, handler)
            finally:
                await self.pool.release(connection)
                logger.debug(f"Stopped listening on channel {channel}")

        return stop

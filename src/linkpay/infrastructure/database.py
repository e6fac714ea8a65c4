"""Redis connection backing the shared session store."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Protocol

import redis.asyncio as redis


class HasDatabaseSettings(Protocol):
    database_url: str


class DatabaseClient:
    """Owns one pooled ``redis.asyncio`` client, created on first use.

    Values are decoded to ``str`` since sessions are stored as JSON text.
    """

    def __init__(self, settings: HasDatabaseSettings):
        self.settings = settings
        self._redis: Optional[redis.Redis] = None

    def connect(self) -> redis.Redis:
        if self._redis is None:
            # e.g. redis://localhost:6379/0
            self._redis = redis.from_url(
                self.settings.database_url, decode_responses=True
            )
        return self._redis

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[redis.Redis, None]:
        """Yield the pooled client; the pool outlives each block."""
        yield self.connect()

    async def ping(self) -> bool:
        return await self.connect().ping()

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


_db_client: Optional[DatabaseClient] = None


def get_database_client(settings: HasDatabaseSettings) -> DatabaseClient:
    """Return the process-wide client, creating it for the first caller."""
    global _db_client
    if _db_client is None:
        _db_client = DatabaseClient(settings)
    return _db_client


async def close_database_client() -> None:
    """Release the process-wide client's connections, if one was created."""
    global _db_client
    if _db_client is not None:
        await _db_client.aclose()
        _db_client = None

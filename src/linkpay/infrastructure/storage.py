"""Storage abstractions with in-memory and Redis implementations."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from .database import DatabaseClient


class KeyValueStore(ABC):
    """Abstract key-value store with the minimal operations used by repositories."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(
        self, key: str, value: str, *, ttl_seconds: Optional[int] = None
    ) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> int:
        pass

    @abstractmethod
    async def pop(self, key: str) -> Optional[str]:
        """Atomically return and remove the value stored under ``key``."""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store guarded by a lock. Nothing survives a restart."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    async def set(
        self, key: str, value: str, *, ttl_seconds: Optional[int] = None
    ) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self._data.pop(key, None) is not None else 0

    async def pop(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed implementation of KeyValueStore."""

    def __init__(self, db_client: DatabaseClient):
        self._db_client = db_client

    async def get(self, key: str) -> Optional[str]:
        async with self._db_client.get_connection() as conn:
            return await conn.get(key)

    async def set(
        self, key: str, value: str, *, ttl_seconds: Optional[int] = None
    ) -> None:
        async with self._db_client.get_connection() as conn:
            await conn.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> int:
        async with self._db_client.get_connection() as conn:
            return await conn.delete(key)

    async def pop(self, key: str) -> Optional[str]:
        # GETDEL is atomic server side (Redis >= 6.2)
        async with self._db_client.get_connection() as conn:
            return await conn.getdel(key)

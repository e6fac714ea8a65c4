"""FlowSession repository implementation over a storage abstraction."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from ..domain.entities import FlowSession
from ..domain.session_repository import FlowSessionRepository
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


class FlowSessionRepositoryImpl(FlowSessionRepository):
    """FlowSession repository using a KeyValueStore.

    ``namespace`` separates key spaces sharing one store (flow tokens and
    incoming payment ids). Sessions older than ``ttl_seconds`` read as absent.
    """

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str,
        *,
        ttl_seconds: Optional[int] = None,
    ):
        self.store = store
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _remaining_ttl(self, session: FlowSession) -> Optional[int]:
        if self.ttl_seconds is None:
            return None
        age = (datetime.now(timezone.utc) - session.created_at).total_seconds()
        return max(1, math.ceil(self.ttl_seconds - age))

    def _decode(self, key: str, data: Optional[str]) -> Optional[FlowSession]:
        if not data:
            return None
        try:
            session = FlowSession.model_validate_json(data)
        except ValidationError:
            logger.warning("Discarding unreadable session %s", self._key(key))
            return None
        if session.is_expired(self.ttl_seconds):
            return None
        return session

    async def put(self, key: str, session: FlowSession) -> None:
        await self.store.set(
            self._key(key),
            session.model_dump_json(),
            ttl_seconds=self._remaining_ttl(session),
        )

    async def get(self, key: str) -> Optional[FlowSession]:
        data = await self.store.get(self._key(key))
        session = self._decode(key, data)
        if data and session is None:
            await self.store.delete(self._key(key))
        return session

    async def delete(self, key: str) -> bool:
        return await self.store.delete(self._key(key)) > 0

    async def take(self, key: str) -> Optional[FlowSession]:
        data = await self.store.pop(self._key(key))
        return self._decode(key, data)

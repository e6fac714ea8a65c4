"""Flow session domain repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entities import FlowSession


class FlowSessionRepository(ABC):
    """Abstract repository for suspended flow sessions.

    Keys are flow tokens for redirect flows and incoming payment ids for
    quote-then-pay flows; each key space gets its own repository.
    """

    @abstractmethod
    async def put(self, key: str, session: FlowSession) -> None:
        """Store a session, replacing any previous one under the same key."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[FlowSession]:
        """Return the live session for ``key`` or None if absent or expired."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a session. Returns True if something was removed."""
        pass

    @abstractmethod
    async def take(self, key: str) -> Optional[FlowSession]:
        """
        Atomically fetch and remove a session.

        Of several concurrent callers for the same key at most one receives
        the session; the others get None.
        """
        pass

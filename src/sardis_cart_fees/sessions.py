"""
Session context storage.

Hosts normally keep a ``SessionContext`` next to their own cart session. For
hosts without a natural place, this store hands out one context per session
id and drops it when the session ends.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict

from sardis_cart_fees.exceptions import SessionContextNotFound
from sardis_cart_fees.models import SessionContext

logger = logging.getLogger(__name__)


class SessionContextStore(ABC):
    """Abstract interface for session context storage."""

    @abstractmethod
    async def get(self, session_id: str) -> SessionContext:
        """Get the context for a session, raising SessionContextNotFound."""
        pass

    @abstractmethod
    async def get_or_create(self, session_id: str) -> SessionContext:
        """Get the context for a session, creating an empty one if needed."""
        pass

    @abstractmethod
    async def discard(self, session_id: str) -> bool:
        """Drop a session's context. Returns whether one existed."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of contexts held."""
        pass


class InMemorySessionContextStore(SessionContextStore):
    """
    In-memory context store for development and testing.

    Note: contexts hold an asyncio.Lock and are not serializable; a
    distributed deployment pins sessions to a process instead.
    """

    def __init__(self):
        self._contexts: Dict[str, SessionContext] = {}

    async def get(self, session_id: str) -> SessionContext:
        ctx = self._contexts.get(session_id)
        if ctx is None:
            raise SessionContextNotFound(session_id)
        return ctx

    async def get_or_create(self, session_id: str) -> SessionContext:
        ctx = self._contexts.get(session_id)
        if ctx is None:
            ctx = SessionContext(session_id=session_id)
            self._contexts[session_id] = ctx
            logger.debug(f"Created fee context for session {session_id}")
        return ctx

    async def discard(self, session_id: str) -> bool:
        ctx = self._contexts.pop(session_id, None)
        if ctx is not None:
            logger.debug(f"Discarded fee context for session {session_id}")
            return True
        return False

    async def count(self) -> int:
        return len(self._contexts)

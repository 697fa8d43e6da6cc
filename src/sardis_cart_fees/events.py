"""
Fee pass events.

Every trigger publishes one event describing what it did to the session's
ledger. Backends follow a small publish/query interface so a host can route
events to its own audit or analytics sink.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class FeeEventType(str, Enum):
    """What happened to a session's fee ledger."""
    PASS_COMPLETED = "fee.pass.completed"
    PASS_SKIPPED = "fee.pass.skipped"
    PASS_FAILED = "fee.pass.failed"
    LEDGER_CLEARED = "fee.ledger.cleared"
    LEDGER_SELF_HEALED = "fee.ledger.self_healed"


@dataclass
class FeeEvent:
    """A single fee engine event."""
    event_type: FeeEventType
    session_id: str
    ledger_version: int
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: f"fee_evt_{uuid.uuid4().hex[:16]}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "session_id": self.session_id,
            "ledger_version": self.ledger_version,
            "reason": self.reason,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class FeeEventBackend(ABC):
    """Abstract interface for fee event sinks."""

    @abstractmethod
    async def publish(self, event: FeeEvent) -> None:
        """Publish an event."""
        pass

    @abstractmethod
    async def query(
        self,
        event_types: Optional[List[FeeEventType]] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FeeEvent]:
        """Query events, newest first."""
        pass


class InMemoryFeeEventBackend(FeeEventBackend):
    """
    In-memory event backend for development and testing.

    Holds at most ``max_events``; the oldest are dropped first.
    """

    def __init__(self, max_events: int = 10000):
        self._events: List[FeeEvent] = []
        self._max_events = max_events
        self._lock = asyncio.Lock()

    async def publish(self, event: FeeEvent) -> None:
        async with self._lock:
            self._events.append(event)
            if len(self._events) > self._max_events:
                self._events = self._events[-self._max_events:]

    async def query(
        self,
        event_types: Optional[List[FeeEventType]] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FeeEvent]:
        async with self._lock:
            results = []
            for event in reversed(self._events):
                if event_types and event.event_type not in event_types:
                    continue
                if session_id and event.session_id != session_id:
                    continue
                results.append(event)
                if len(results) >= limit:
                    break
            return results

    def __len__(self) -> int:
        return len(self._events)


class LoggingFeeEventBackend(FeeEventBackend):
    """Event backend that writes each event to the log."""

    def __init__(self, log_level: int = logging.INFO):
        self._log_level = log_level

    async def publish(self, event: FeeEvent) -> None:
        logger.log(
            self._log_level,
            "Fee event: type=%s session_id=%s version=%s reason=%s",
            event.event_type.value,
            event.session_id,
            event.ledger_version,
            event.reason,
        )

    async def query(
        self,
        event_types: Optional[List[FeeEventType]] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FeeEvent]:
        # Logging backend doesn't support queries
        return []


class CompositeFeeEventBackend(FeeEventBackend):
    """Publishes to several backends; one failing sink does not block the rest."""

    def __init__(self, backends: List[FeeEventBackend]):
        self._backends = backends

    async def publish(self, event: FeeEvent) -> None:
        results = await asyncio.gather(
            *[backend.publish(event) for backend in self._backends],
            return_exceptions=True,
        )
        for backend, result in zip(self._backends, results):
            if isinstance(result, Exception):
                logger.warning(
                    f"Fee event backend {type(backend).__name__} failed: {result}"
                )

    async def query(
        self,
        event_types: Optional[List[FeeEventType]] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FeeEvent]:
        # Query from first backend that returns anything
        for backend in self._backends:
            results = await backend.query(event_types, session_id, limit)
            if results:
                return results
        return []

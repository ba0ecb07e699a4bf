"""
Lifecycle Event Bus

Per-subject progress channel. Each subscriber owns a bounded asyncio.Queue;
publishers never block. A full queue drops its oldest event so a slow
consumer always sees the most recent phases.
"""
from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ...config import EVENT_QUEUE_SIZE

logger = logging.getLogger(__name__)


class LifecyclePhase(str, Enum):
    INITIALIZING = "INITIALIZING"
    PARSING_TEXT = "PARSING_TEXT"
    EXTRACTING_TRADELINES = "EXTRACTING_TRADELINES"
    VALIDATING_METRO2 = "VALIDATING_METRO2"
    SCORING = "SCORING"
    SEEDING = "SEEDING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecyclePhase.COMPLETE, LifecyclePhase.ERROR)


@dataclass
class LifecycleEvent:
    case_id: str
    phase: LifecyclePhase
    progress_percentage: int
    message: str
    payload: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "case_id": self.case_id,
            "phase": self.phase.value,
            "progress_percentage": self.progress_percentage,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.payload is not None:
            data["payload"] = self.payload
        return data


class Subscription:
    """
    One consumer's view of a subject's events.

    Iterate with `async for`; use as an async context manager so the
    subscription is removed when the transport goes away.
    """

    def __init__(self, bus: "EventBus", subject_id: str, maxsize: int):
        self.subject_id = subject_id
        self._bus = bus
        self._queue: "asyncio.Queue[Optional[LifecycleEvent]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def _offer(self, event: Optional[LifecycleEvent]) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                f"Event queue full for subject {self.subject_id}; dropped oldest event"
            )
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[LifecycleEvent]:
        """Next event, or None once closed. Raises asyncio.TimeoutError on timeout."""
        if self.closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus._unsubscribe(self)
        # Wake any consumer parked in get()
        self._offer(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> LifecycleEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class EventBus:
    """Per-subject publish/subscribe channel for lifecycle events."""

    def __init__(self, queue_size: int = EVENT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Set[Subscription]] = defaultdict(set)

    def subscribe(self, subject_id: str) -> Subscription:
        subscription = Subscription(self, subject_id, self.queue_size)
        self._subscribers[subject_id].add(subscription)
        logger.debug(f"Subscribed to events for {subject_id} ({self.subscriber_count(subject_id)} active)")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.subject_id)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.subject_id]

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()

    def publish(self, subject_id: str, event: LifecycleEvent) -> int:
        """Deliver an event to every subscriber of the subject. Returns receiver count."""
        subscribers: List[Subscription] = list(self._subscribers.get(subject_id, ()))
        for subscription in subscribers:
            subscription._offer(event)
        return len(subscribers)

    def emit(
        self,
        subject_id: str,
        phase: LifecyclePhase,
        progress_percentage: int,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> LifecycleEvent:
        """Build and publish an event in one call."""
        event = LifecycleEvent(
            case_id=subject_id,
            phase=phase,
            progress_percentage=progress_percentage,
            message=message,
            payload=payload,
        )
        self.publish(subject_id, event)
        return event

    def subscriber_count(self, subject_id: str) -> int:
        return len(self._subscribers.get(subject_id, ()))

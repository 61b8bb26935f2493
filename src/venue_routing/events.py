"""Venue Event Hub.

Adapter events are re-published as envelopes tagged with the venue id that
produced them. Topics are the adapter event names (``connected``,
``order_update``, ...) plus ``trading_mode_changed``; subscribers pick them
with glob patterns such as ``"*"`` or ``"order_*"``.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TRADING_MODE_CHANGED = "trading_mode_changed"


def _short_id() -> str:
    return uuid.uuid4().hex[:16]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class SubscriberState(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


@dataclass
class EventHubConfig:
    """Limits for the event hub."""
    max_subscribers_per_topic: int = 100
    dead_letter_enabled: bool = True
    max_dead_letters: int = 1000
    max_delivery_log: int = 1000


# =====================================================================
# Envelope, Subscriber, Delivery bookkeeping
# =====================================================================


@dataclass
class VenueEventEnvelope:
    """An adapter event tagged with its venue id."""
    topic: str
    venue_id: str
    payload: Any = None
    event_id: str = field(default_factory=_short_id)
    timestamp: datetime = field(default_factory=_now)

    def payload_dict(self) -> Any:
        if hasattr(self.payload, "to_dict"):
            return self.payload.to_dict()
        if isinstance(self.payload, BaseException):
            return {"type": type(self.payload).__name__, "message": str(self.payload)}
        return self.payload

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "topic": self.topic,
            "venue_id": self.venue_id,
            "payload": self.payload_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[VenueEventEnvelope], Any]
EventFilter = Callable[[VenueEventEnvelope], bool]


@dataclass
class Subscriber:
    """A handler bound to a topic pattern."""
    handler: EventHandler
    topic_pattern: str = "*"
    name: str = ""
    filter_fn: Optional[EventFilter] = None
    state: SubscriberState = SubscriberState.ACTIVE
    subscriber_id: str = field(default_factory=_short_id)
    created_at: datetime = field(default_factory=_now)
    events_received: int = 0
    events_failed: int = 0

    @property
    def label(self) -> str:
        return self.name or self.subscriber_id

    def matches(self, topic: str) -> bool:
        return self.topic_pattern == "*" or fnmatch.fnmatchcase(topic, self.topic_pattern)

    def wants(self, event: VenueEventEnvelope) -> bool:
        """Active, topic matches, and the optional filter accepts the event."""
        if self.state != SubscriberState.ACTIVE or not self.matches(event.topic):
            return False
        if self.filter_fn is None:
            return True
        try:
            return bool(self.filter_fn(event))
        except Exception as e:
            logger.warning(f"Filter of subscriber {self.label} raised, skipping event: {e}")
            return False


@dataclass
class DeliveryRecord:
    """Outcome of handing one event to one subscriber."""
    event_id: str
    subscriber_id: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    error: Optional[str] = None
    delivered_at: Optional[datetime] = None
    record_id: str = field(default_factory=_short_id)


@dataclass
class DeadLetter:
    event: VenueEventEnvelope
    subscriber_id: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event.event_id,
            "topic": self.event.topic,
            "venue_id": self.event.venue_id,
            "subscriber_id": self.subscriber_id,
            "error": self.error,
        }


# =====================================================================
# Event Hub
# =====================================================================


class EventHub:
    """Fan-out of venue events to any number of subscribers.

    Handlers run inline in ``publish``. A handler returning a coroutine has
    it scheduled on the running loop. Failures of either kind are logged,
    counted against the subscriber and dead-lettered; they never reach the
    publisher.

    Example:
        hub = EventHub()
        hub.subscribe(lambda e: print(e.venue_id, e.payload), "disconnected")
        hub.publish("disconnected", "alpaca-main", {"reason": "Heartbeat failures"})
    """

    def __init__(self, config: Optional[EventHubConfig] = None) -> None:
        self.config = config or EventHubConfig()
        self._subscribers: dict[str, Subscriber] = {}
        self._log: deque[DeliveryRecord] = deque(maxlen=self.config.max_delivery_log)
        self._dead: deque[DeadLetter] = deque(maxlen=self.config.max_dead_letters)
        self._pending: set[asyncio.Task] = set()
        self._published = 0
        self._delivered = 0

    @property
    def subscribers(self) -> dict[str, Subscriber]:
        return dict(self._subscribers)

    # -- Subscriptions ---------------------------------------------------

    def subscribe(
        self,
        handler: EventHandler,
        topic_pattern: str = "*",
        name: str = "",
        filter_fn: Optional[EventFilter] = None,
    ) -> Subscriber:
        """Register ``handler`` for topics matching ``topic_pattern``.

        Raises:
            ValueError: The pattern already has the maximum number of subscribers.
        """
        limit = self.config.max_subscribers_per_topic
        same_pattern = sum(1 for s in self._subscribers.values() if s.topic_pattern == topic_pattern)
        if same_pattern >= limit:
            raise ValueError(f"Max subscribers ({limit}) reached for pattern '{topic_pattern}'")

        sub = Subscriber(
            handler=handler,
            topic_pattern=topic_pattern,
            name=name or getattr(handler, "__name__", ""),
            filter_fn=filter_fn,
        )
        self._subscribers[sub.subscriber_id] = sub
        logger.debug(f"Subscriber {sub.label} registered for '{topic_pattern}'")
        return sub

    def unsubscribe(self, subscriber_id: str) -> bool:
        return self._subscribers.pop(subscriber_id, None) is not None

    def pause_subscriber(self, subscriber_id: str) -> bool:
        return self._set_state(subscriber_id, SubscriberState.PAUSED)

    def resume_subscriber(self, subscriber_id: str) -> bool:
        return self._set_state(subscriber_id, SubscriberState.ACTIVE)

    def _set_state(self, subscriber_id: str, state: SubscriberState) -> bool:
        sub = self._subscribers.get(subscriber_id)
        if sub is None:
            return False
        sub.state = state
        return True

    # -- Publishing ------------------------------------------------------

    def publish(self, topic: str, venue_id: str, payload: Any = None) -> list[DeliveryRecord]:
        """Deliver one event to every interested subscriber.

        Returns:
            One delivery record per subscriber the event was handed to.
        """
        event = VenueEventEnvelope(topic=topic, venue_id=venue_id, payload=payload)
        self._published += 1
        # snapshot: handlers may (un)subscribe while we iterate
        targets = [s for s in list(self._subscribers.values()) if s.wants(event)]
        return [self._deliver(event, sub) for sub in targets]

    def _deliver(self, event: VenueEventEnvelope, sub: Subscriber) -> DeliveryRecord:
        record = DeliveryRecord(event_id=event.event_id, subscriber_id=sub.subscriber_id)
        self._log.append(record)
        try:
            result = sub.handler(event)
            if asyncio.iscoroutine(result):
                # stays PENDING until the task finishes
                self._schedule(result, event, sub, record)
                return record
        except Exception as exc:
            self._record_failure(record, event, sub, exc)
            return record

        self._record_success(record, sub)
        return record

    def _record_success(self, record: DeliveryRecord, sub: Subscriber) -> None:
        record.status = DeliveryStatus.DELIVERED
        record.delivered_at = _now()
        sub.events_received += 1
        self._delivered += 1

    def _schedule(
        self,
        coro: Awaitable[Any],
        event: VenueEventEnvelope,
        sub: Subscriber,
        record: DeliveryRecord,
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise RuntimeError("coroutine handler requires a running event loop") from None

        task = loop.create_task(coro)
        self._pending.add(task)

        def _finished(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            if t.exception() is not None:
                self._record_failure(record, event, sub, t.exception())
            else:
                self._record_success(record, sub)

        task.add_done_callback(_finished)

    def _record_failure(
        self,
        record: DeliveryRecord,
        event: VenueEventEnvelope,
        sub: Subscriber,
        exc: BaseException,
    ) -> None:
        record.error = str(exc)
        sub.events_failed += 1
        logger.error(f"Subscriber {sub.label} failed on '{event.topic}' from {event.venue_id}: {exc}")
        if self.config.dead_letter_enabled:
            record.status = DeliveryStatus.DEAD_LETTER
            self._dead.append(DeadLetter(event, sub.subscriber_id, record.error))
        else:
            record.status = DeliveryStatus.FAILED

    async def drain(self) -> None:
        """Wait until every scheduled coroutine handler has finished."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # -- Inspection ------------------------------------------------------

    def get_dead_letters(self, limit: int = 50) -> list[dict[str, Any]]:
        return [d.to_dict() for d in list(self._dead)[-limit:]]

    def clear_dead_letters(self) -> int:
        cleared = len(self._dead)
        self._dead.clear()
        return cleared

    def get_delivery_log(
        self,
        event_id: Optional[str] = None,
        subscriber_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[DeliveryRecord]:
        selected = [
            r for r in self._log
            if (event_id is None or r.event_id == event_id)
            and (subscriber_id is None or r.subscriber_id == subscriber_id)
        ]
        return selected[-limit:]

    def get_statistics(self) -> dict[str, Any]:
        subs = self._subscribers.values()
        return {
            "total_subscribers": len(self._subscribers),
            "active_subscribers": sum(1 for s in subs if s.state == SubscriberState.ACTIVE),
            "total_published": self._published,
            "total_delivered": self._delivered,
            "dead_letters": len(self._dead),
            "delivery_log_size": len(self._log),
            "pending_async": len(self._pending),
        }

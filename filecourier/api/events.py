"""
Transfer Events

Design Decision: Event Fan-Out
==============================

Options Considered:
1. Module-level broadcast channel
   - Easy to reach from anywhere
   - Hidden global state, awkward in tests

2. Explicit bus object passed to publishers and subscribers
   - Lifetime owned by whoever starts the service
   - Several independent buses can coexist (tests)

Decision: Explicit EventBus
- publish() never blocks and never raises
- Each subscriber gets its own bounded buffer (default 16 events)
- A subscriber that falls behind loses its oldest events
- Subscribers only see events published after they subscribed

Wire format (one text message per event):
    {"Started": {"file": "report.pdf"}}
    {"Failed": {"file": "report.pdf", "reason": "..."}}
"""

import asyncio
import json
import logging
import threading
from collections import deque
from typing import Deque, Optional, Set, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 16


# === Event Models ===

class Started(BaseModel):
    """A send has begun."""
    file: str


class Finished(BaseModel):
    """A send completed."""
    file: str


class Failed(BaseModel):
    """A send or receive failed."""
    file: str
    reason: str


class Received(BaseModel):
    """A file was received and saved."""
    file: str
    verified: bool = True


TransferEvent = Union[Started, Finished, Failed, Received]


def encode_event(event: TransferEvent) -> str:
    """Encode an event as externally tagged JSON."""
    return json.dumps({type(event).__name__: event.model_dump()})


class Subscription:
    """
    One subscriber's view of the bus.

    Holds at most `capacity` undelivered events; the oldest are dropped
    when the subscriber lags.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self.missed = 0
        self._events: Deque[TransferEvent] = deque()
        self._ready = asyncio.Event()
        self._loop = asyncio.get_running_loop()

    def _offer(self, event: TransferEvent):
        if len(self._events) >= self.capacity:
            self._events.popleft()
            self.missed += 1
        self._events.append(event)
        self._ready.set()

    def deliver(self, event: TransferEvent):
        """Queue an event; safe to call from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._offer(event)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._offer, event)

    def pending(self) -> int:
        return len(self._events)

    def get_nowait(self) -> Optional[TransferEvent]:
        """Pop the next event, or None if nothing is queued."""
        if not self._events:
            self._ready.clear()
            return None
        return self._events.popleft()

    async def get(self) -> TransferEvent:
        """Wait for the next event."""
        while not self._events:
            self._ready.clear()
            await self._ready.wait()
        return self._events.popleft()


class EventBus:
    """
    Fire-and-forget fan-out of transfer events.

    Must be subscribed to from inside a running event loop; publish()
    may be called from anywhere.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self.published = 0
        self._subscribers: Set[Subscription] = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Register a new subscriber. Earlier events are not replayed."""
        subscription = Subscription(self.capacity)
        with self._lock:
            self._subscribers.add(subscription)
        logger.debug(f"Event subscriber added ({self.subscriber_count} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            self._subscribers.discard(subscription)
        logger.debug(f"Event subscriber removed ({self.subscriber_count} total)")

    def publish(self, event: TransferEvent):
        """Hand an event to every current subscriber without waiting."""
        with self._lock:
            subscribers = list(self._subscribers)
            self.published += 1

        for subscription in subscribers:
            try:
                subscription.deliver(event)
            except RuntimeError as e:
                # Subscriber's loop already gone
                logger.debug(f"Dropping event for stale subscriber: {e}")


def publish(bus: Optional[EventBus], event: TransferEvent):
    """Publish if a bus is configured."""
    if bus is not None:
        bus.publish(event)

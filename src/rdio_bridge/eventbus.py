"""Async event bus carrying peer connection events to their consumers."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import MutableMapping
from typing import Final, Protocol

logger = logging.getLogger(__name__)

TOPIC_PEER_OPEN: Final[str] = "peer.open"
TOPIC_PEER_CLOSE: Final[str] = "peer.close"
TOPIC_PEER_RECONNECTING: Final[str] = "peer.reconnecting"
TOPIC_VOICE: Final[str] = "peer.voice"
TOPIC_RELEASE: Final[str] = "peer.release"


class ConsumerCallback(Protocol):
    """Protocol describing consumer callbacks invoked for topic events."""

    async def __call__(self, event: object) -> None:  # pragma: no cover - protocol signature
        """Consume a single event dispatched by the event bus."""

        ...


class EventBus:
    """Topic-aware event bus that delivers each event to subscribers in order.

    ``publish`` awaits every subscriber one after another, so a producer that
    awaits ``publish`` for each event observes strictly sequential handling.
    """

    def __init__(self) -> None:
        """Initialise the event bus without subscribers."""

        self._subscribers: MutableMapping[str, list[ConsumerCallback]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str, callback: ConsumerCallback) -> None:
        """Register *callback* to receive events for *topic*."""

        async with self._lock:
            if callback not in self._subscribers[topic]:
                self._subscribers[topic].append(callback)

    async def unsubscribe(self, topic: str, callback: ConsumerCallback) -> None:
        """Remove *callback* subscription for *topic* if present."""

        async with self._lock:
            callbacks = self._subscribers.get(topic)
            if not callbacks:
                return
            try:
                callbacks.remove(callback)
            except ValueError:
                return
            if not callbacks:
                self._subscribers.pop(topic, None)

    async def publish(self, topic: str, event: object) -> None:
        """Dispatch *event* to each subscriber of *topic*.

        A failing subscriber is logged and does not prevent delivery to the rest.
        """

        async with self._lock:
            callbacks = list(self._subscribers.get(topic, ()))
        for callback in callbacks:
            try:
                await callback(event)
            except Exception:
                logger.exception("Consumer failed handling event on topic %s", topic)

    async def topics(self) -> dict[str, int]:
        """Return a snapshot of topics and subscriber counts."""

        async with self._lock:
            return {topic: len(callbacks) for topic, callbacks in self._subscribers.items()}

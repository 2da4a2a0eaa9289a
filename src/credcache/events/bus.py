"""Synchronous pub/sub event bus.

Events are delivered on the thread that publishes them, which for the
credentials manager is always the owning event loop. Plain callbacks run
before ``publish`` returns; coroutine callbacks are scheduled as tasks.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union
from uuid import uuid4

logger = logging.getLogger(__name__)

# Type alias for subscriber callbacks
EventCallback = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass
class Subscription:
    """Represents an active event subscription."""

    id: str = field(default_factory=lambda: uuid4().hex)
    event_types: list[str] = field(default_factory=list)
    callback: EventCallback | None = None


class EventBus:
    """In-memory pub/sub bus with per-bus sequence numbers."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._seq = itertools.count(1)

    def publish(self, event_type: str, payload: dict[str, Any]) -> int:
        """Notify matching subscribers. Returns the sequence number."""
        seq = next(self._seq)
        event = {
            "seq": seq,
            "event_type": event_type,
            "payload": payload,
        }

        for sub in list(self._subscriptions):
            if "*" in sub.event_types or event_type in sub.event_types:
                if sub.callback is None:
                    continue
                try:
                    result = sub.callback(event)
                    if inspect.isawaitable(result):
                        asyncio.ensure_future(result)
                except Exception:
                    logger.exception(
                        "Error delivering %s to subscription %s", event_type, sub.id
                    )

        return seq

    def subscribe(
        self,
        event_types: list[str],
        callback: EventCallback,
    ) -> Subscription:
        """Register a callback for the given event types.

        Use ``["*"]`` to subscribe to all events.

        Returns a ``Subscription`` that can be passed to ``unsubscribe()``.
        """
        sub = Subscription(event_types=list(event_types), callback=callback)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        self._subscriptions = [
            s for s in self._subscriptions if s.id != subscription.id
        ]

"""In-process event delivery for credential manager notifications."""

from credcache.events.bus import EventBus, Subscription
from credcache.events.types import EventType

__all__ = ["EventBus", "EventType", "Subscription"]

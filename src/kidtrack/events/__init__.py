"""kidtrack event system."""

from kidtrack.events.bus import EventBus
from kidtrack.events.types import EventType

__all__ = ["EventBus", "EventType"]

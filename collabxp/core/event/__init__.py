"""Async publish/subscribe infrastructure."""

from collabxp.core.event.bus import EventBus
from collabxp.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventListener",
    "EventPayload",
    "ListenerPriority",
    "CallbackType",
]

"""
Event system for Arena.

Provides the in-process EventBus and a global runtime singleton used by the
application entry point. Services receive the bus through their constructor.
"""

from .bus import CallbackType, EventBus, EventListener, EventPayload, ListenerPriority

event_bus = EventBus()

__all__ = [
    "event_bus",
    "EventBus",
    "EventPayload",
    "EventListener",
    "ListenerPriority",
    "CallbackType",
]

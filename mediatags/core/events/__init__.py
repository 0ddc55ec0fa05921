"""
Event System - Pub/Sub Messaging.

Provides:
- Signal: Simple observer pattern for sync notifications (e.g., config changes)
- EventBus: Notification bus for tag/file change events
- Events: Standard event type constants for type-safe subscriptions

Usage:
    from mediatags.core.events import EventBus, Events

    event_bus.subscribe(Events.TAGS_UPDATED, on_tags_updated)
    event_bus.emit(Events.TAGS_UPDATED, {"tags": updates})
"""
from .observer import Signal
from .bus import EventBus
from .constants import Events


__all__ = ["Signal", "EventBus", "Events"]

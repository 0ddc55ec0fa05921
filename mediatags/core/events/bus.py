"""
EventBus - Notification Bus

Single pub/sub channel through which the tag engine tells subscribers (UI
sockets, caches) that tags or files changed. Delivery is best effort: the
engine never depends on it for its own correctness.
"""
import asyncio
import inspect
from typing import Any, Callable, Dict, List, Set
from loguru import logger

from mediatags.core.base_system import BaseSystem


class EventBus(BaseSystem):
    """
    Event bus for application-wide pub/sub.

    Usage:
        # Subscribe
        event_bus.subscribe("tags.updated", handle_tags_updated)

        # Publish and wait for handlers
        await event_bus.publish("tags.updated", {"tags": [...]})

        # Fire and forget
        event_bus.emit("tags.reload")
    """

    def __init__(self, locator, config):
        super().__init__(locator, config)
        self._subscribers: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    async def initialize(self):
        """Initialize event bus."""
        logger.info("EventBus initialized")
        await super().initialize()

    async def shutdown(self):
        """Flush in-flight deliveries and drop subscribers."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._subscribers.clear()
        await super().shutdown()

    def subscribe(self, event: str, handler: Callable) -> None:
        """
        Subscribe to an event.

        Args:
            event: Event name (e.g., "tag.merged", "tags.updated")
            handler: Callback function (sync or async) taking the payload
        """
        handlers = self._subscribers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(f"Subscribed to {event}: {getattr(handler, '__name__', handler)}")

    def unsubscribe(self, event: str, handler: Callable) -> None:
        """
        Unsubscribe from an event.

        Args:
            event: Event name
            handler: Handler to remove
        """
        if event in self._subscribers and handler in self._subscribers[event]:
            self._subscribers[event].remove(handler)
            logger.debug(f"Unsubscribed from {event}: {getattr(handler, '__name__', handler)}")

    async def publish(self, event: str, data: Any = None) -> None:
        """
        Publish an event to all subscribers and wait for them.

        Args:
            event: Event name
            data: Optional payload passed to handlers
        """
        for handler in list(self._subscribers.get(event, [])):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in handler for {event}: {e}")

    def emit(self, event: str, data: Any = None) -> None:
        """
        Fire-and-forget publish.

        Sync handlers run inline; async handlers are scheduled on the running
        loop and tracked until they finish.

        Args:
            event: Event name
            data: Optional payload passed to handlers
        """
        for handler in list(self._subscribers.get(event, [])):
            try:
                if inspect.iscoroutinefunction(handler):
                    task = asyncio.get_running_loop().create_task(self._deliver(event, handler, data))
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in sync handler for {event}: {e}")

    async def _deliver(self, event: str, handler: Callable, data: Any) -> None:
        try:
            await handler(data)
        except Exception as e:
            logger.error(f"Error in async handler for {event}: {e}")

"""
Message Bus

Routes committed domain events to the handlers subscribed to them.
Handlers are registered at app start-up (see each app's ``handlers`` module).
"""

from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class MessageBus:
    """
    In-process event bus (1:N event to handlers)

    A failing handler is logged and skipped; the remaining handlers still run.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)

    def subscribe(self, *event_types: Type[DomainEvent]):
        """Decorator form of ``register``."""

        def decorator(handler: EventHandler) -> EventHandler:
            for event_type in event_types:
                self.register(event_type, handler)
            return handler

        return decorator

    def register(self, event_type: Type[DomainEvent], handler: EventHandler):
        if handler in self._handlers[event_type]:
            return
        self._handlers[event_type].append(handler)
        logger.debug(f"Registered {handler.__name__} for {event_type.__name__}")

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._handlers.get(event_type, []))

    def publish_events(self, events: Iterable[DomainEvent]):
        for event in events:
            event_type = type(event)
            handlers = self.handlers_for(event_type)
            if not handlers:
                logger.debug(f"No handlers registered for {event_type.__name__}")
                continue

            logger.info(f"Publishing event: {event_type.__name__} (ID: {event.event_id})")
            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {handler.__name__} "
                        f"for event {event_type.__name__}: {e}",
                        exc_info=True,
                    )


# Global message bus instance
message_bus = MessageBus()

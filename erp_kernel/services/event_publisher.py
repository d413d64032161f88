"""
EventPublisher -- in-process dispatch of domain events to handlers.

Responsibility:
    Lets entity-specific modules react to approval outcomes without the
    approval core knowing about them.  Handlers subscribe per event type
    and are called synchronously with the event and the caller's session,
    so their writes commit (or roll back) together with the transition
    that produced the event.

Architecture position:
    Kernel > Services.  No imports from models/ or selectors/.

Failure modes:
    - A handler exception propagates to the publisher's caller; the
      surrounding transaction is expected to roll back.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

from erp_kernel.logging_config import get_logger

logger = get_logger("services.event_publisher")

EventHandler = Callable[[Any, Session], None]


class EventPublisher:
    """Subscribe/publish registry keyed by event class."""

    def __init__(self) -> None:
        self._subscribers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)
        logger.debug(
            "event_handler_subscribed",
            extra={
                "event_type": event_type.__name__,
                "handler": getattr(handler, "__qualname__", repr(handler)),
            },
        )

    def unsubscribe(self, event_type: type, handler: EventHandler) -> None:
        self._subscribers[event_type] = [
            h for h in self._subscribers[event_type] if h != handler
        ]

    def handlers_for(self, event_type: type) -> tuple[EventHandler, ...]:
        return tuple(self._subscribers.get(event_type, ()))

    def publish(self, event: Any, session: Session) -> int:
        """Call every handler registered for ``type(event)``; return the count."""
        handlers = self.handlers_for(type(event))
        logger.info(
            "event_published",
            extra={
                "event_type": type(event).__name__,
                "handler_count": len(handlers),
            },
        )
        for handler in handlers:
            handler(event, session)
        return len(handlers)

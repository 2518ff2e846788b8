"""Typed publish/subscribe channel for domain events.

Listeners are registered per event class. Publishing calls every listener of
the event's class in registration order; a failing listener is logged and
counted but never stops the others and never propagates to the publisher.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from src.config.logging_config import get_logger
from src.domain.events import DomainEvent

logger = get_logger(__name__)

EventT = TypeVar("EventT")


@dataclass(slots=True)
class PublishResult:
    """Outcome of delivering one event to its listeners."""

    event_name: str
    delivered: int
    failed: int

    @property
    def listener_count(self) -> int:
        return self.delivered + self.failed


def _listener_name(listener: Callable[..., Any]) -> str:
    return getattr(listener, "__qualname__", None) or repr(listener)


class EventChannel:
    """In-process event dispatcher shared by use cases and delivery listeners."""

    def __init__(self) -> None:
        self._listeners: defaultdict[type, list[Callable[[Any], None]]] = (
            defaultdict(list)
        )
        self._lock = threading.RLock()

    def subscribe(
        self, event_type: type[EventT], listener: Callable[[EventT], None]
    ) -> None:
        with self._lock:
            self._listeners[event_type].append(listener)
        logger.debug(
            "event_listener_subscribed",
            event_type=event_type.__name__,
            listener=_listener_name(listener),
        )

    def unsubscribe(
        self, event_type: type[EventT], listener: Callable[[EventT], None]
    ) -> bool:
        """Remove a listener. Returns False if it was not subscribed."""

        with self._lock:
            listeners = self._listeners.get(event_type)
            if not listeners or listener not in listeners:
                return False
            listeners.remove(listener)
            return True

    def listener_count(self, event_type: type) -> int:
        with self._lock:
            return len(self._listeners.get(event_type, ()))

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def publish(self, event: DomainEvent) -> PublishResult:
        """Deliver ``event`` to every listener registered for its class.

        Args:
            event: Domain event instance

        Returns:
            Delivery counts; failures are logged, not raised
        """
        with self._lock:
            listeners = list(self._listeners.get(type(event), ()))

        delivered = 0
        failed = 0
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                failed += 1
                logger.exception(
                    "event_listener_failed",
                    event_name=event.name,
                    listener=_listener_name(listener),
                )
            else:
                delivered += 1

        if failed:
            logger.warning(
                "event_publish_partial_failure",
                event_name=event.name,
                delivered=delivered,
                failed=failed,
            )

        return PublishResult(event_name=event.name, delivered=delivered, failed=failed)


__all__ = ["EventChannel", "PublishResult"]

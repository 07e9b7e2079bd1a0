"""In-process notification channel for committed reading transitions."""

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from meterbook.models.enums import ReadingEventKind, ReadingStatus

logger = logging.getLogger(__name__)


class ReadingEvent(BaseModel):
    """A transition that has been committed to the store."""

    kind: ReadingEventKind
    reading_id: UUID
    flat_id: str
    status: ReadingStatus
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[ReadingEvent], None]


class EventChannel:
    """Fan-out of reading events to subscribers such as dashboards."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: ReadingEvent) -> None:
        """Deliver an event to every subscriber.

        The transition is already committed, so a failing subscriber is
        logged and does not stop delivery to the others.
        """
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed on %s event for reading %s",
                    callback,
                    event.kind.value,
                    event.reading_id,
                )


reading_events = EventChannel()

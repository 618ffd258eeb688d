"""
events/broadcaster.py - Event fan-out.

DELIVERY CONTRACT
=================
- topic -> ordered list of handlers; several handlers per topic
- handlers run in subscription order
- delivery is synchronous inside emit(); nothing is queued
- a handler that raises is logged and skipped, later handlers still run
=================
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from core.constants import Topic
from core.logging import get_logger
from core.time import now_iso

logger = get_logger(__name__)


@dataclass(frozen=True)
class Event:
    """A state transition delivered to subscribers."""
    topic: Topic
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


Handler = Callable[[Event], None]


class EventBroadcaster:
    """
    Registry of subscribers by topic.

    Usage:
        broadcaster = EventBroadcaster()
        unsubscribe = broadcaster.subscribe(Topic.DEAL_CREATED, handler)
        broadcaster.emit(Topic.DEAL_CREATED, {"deal": deal.to_dict()})
    """

    def __init__(self):
        self._handlers: dict[Topic, list[Handler]] = {topic: [] for topic in Topic}
        self._emitted: dict[Topic, int] = {topic: 0 for topic in Topic}

    def subscribe(self, topic: Topic, handler: Handler) -> Callable[[], None]:
        """
        Register handler for topic.

        Returns:
            Callable that removes this subscription
        """
        self._handlers[Topic(topic)].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers[Topic(topic)]
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, topic: Topic, payload: dict[str, Any] | None = None) -> Event:
        """Deliver an event to every subscriber of topic."""
        event = Event(topic=Topic(topic), payload=payload or {})
        self._emitted[event.topic] += 1

        for handler in list(self._handlers[event.topic]):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Subscriber failed on {event.topic.value}: {e}",
                    extra={"context": {"topic": event.topic.value}},
                    exc_info=True,
                )

        return event

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._handlers[Topic(topic)])

    def get_stats(self) -> dict[str, Any]:
        return {
            topic.value: {
                "subscribers": len(self._handlers[topic]),
                "emitted": self._emitted[topic],
            }
            for topic in Topic
        }

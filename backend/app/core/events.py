"""Explicit change-notification channel between the stores and their observers."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class StoreEvent:
    topic: str  # "conversations" | "sources" | "llms"
    action: str  # e.g. "create", "update", "delete"
    key: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[StoreEvent], None]


class EventChannel:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it again."""
        self._listeners[topic].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[topic]:
                self._listeners[topic].remove(listener)

        return unsubscribe

    def emit(self, event: StoreEvent) -> None:
        for listener in list(self._listeners.get(event.topic, [])):
            try:
                listener(event)
            except Exception:
                # an observer must not break a store mutation that already happened
                logger.exception(f"Listener failed for {event.topic}:{event.action}")

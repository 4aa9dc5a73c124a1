from __future__ import annotations

from collections import deque
from typing import Any, Callable

from ingest_platform.services.message_queue.interface import MessageQueueInterface


class MemoryQueue(MessageQueueInterface):
    """In-memory message queue for unit testing.

    ``published`` records every (topic, message, key) triple so tests can
    assert on partition keys as well as payloads.
    """

    def __init__(self) -> None:
        self._topics: dict[str, deque[Any]] = {}
        self._handlers: dict[str, list[Callable[[Any], None]]] = {}
        self.subscriptions: set[str] = set()
        self.published: list[tuple[str, Any, str | None]] = []
        self.connected = False
        self.acked: list[str] = []

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def publish(self, topic: str, message: Any, key: str | None = None) -> None:
        self._topics.setdefault(topic, deque()).append(message)
        self.published.append((topic, message, key))
        for handler in self._handlers.get(topic, []):
            handler(message)

    def subscribe(self, topic: str, handler: Callable[[Any], None] | None = None) -> None:
        self.subscriptions.add(topic)
        if handler is not None:
            self._handlers.setdefault(topic, []).append(handler)

    def consume_one(self, topic: str) -> Any | None:
        q = self._topics.get(topic)
        if q:
            return q.popleft()
        return None

    def ack(self, topic: str) -> None:
        self.acked.append(topic)

    def health_check(self) -> bool:
        return True

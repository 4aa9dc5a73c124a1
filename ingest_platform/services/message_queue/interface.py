from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable


class DeliveryError(RuntimeError):
    """The broker did not acknowledge a published message."""


class MessageQueueInterface(ABC):
    """Publish/subscribe over named topics.

    ``consume_one`` hands back the raw message value exactly as delivered
    (bytes from a broker, whatever was published for in-memory queues);
    decoding is the consumer's job so malformed payloads can be rejected at
    the envelope boundary.
    """

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def publish(self, topic: str, message: Any, key: str | None = None) -> None:
        """Publish and wait for the broker ack. Raises DeliveryError on failure."""
        ...

    @abstractmethod
    def subscribe(self, topic: str, handler: Callable[[Any], None] | None = None) -> None: ...

    @abstractmethod
    def consume_one(self, topic: str) -> Any | None:
        """Return the next message on *topic*, or None when nothing is pending."""
        ...

    def ack(self, topic: str) -> None:
        """Mark the message last returned by consume_one(topic) as processed.

        Brokers that track consumer progress advance it only here, so a crash
        while the message is being handled leads to redelivery.
        """

    @abstractmethod
    def health_check(self) -> bool: ...

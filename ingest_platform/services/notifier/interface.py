from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    body: str
    recipients: list[str] = field(default_factory=list)


class NotificationSenderInterface(ABC):
    """Delivers rendered email messages."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """Deliver *message*. Raises on transport failure."""
        ...

    @abstractmethod
    async def verify(self) -> bool:
        """Check the transport is usable."""
        ...

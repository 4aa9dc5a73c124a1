from __future__ import annotations

from ingest_platform.services.notifier.interface import EmailMessage, NotificationSenderInterface


class MemoryNotificationSender(NotificationSenderInterface):
    """Collects sent messages for test assertions."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []
        self.fail_with: Exception | None = None

    async def send(self, message: EmailMessage) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)

    async def verify(self) -> bool:
        return True

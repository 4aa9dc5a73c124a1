from __future__ import annotations

from ingest_platform.services.logger.factory import LoggerFactory
from ingest_platform.services.notifier.interface import EmailMessage, NotificationSenderInterface


class LogNotificationSender(NotificationSenderInterface):
    """Writes each message to the log instead of sending it."""

    def __init__(self, logger: LoggerFactory) -> None:
        self.log = logger.create()

    async def send(self, message: EmailMessage) -> None:
        self.log.info(
            "Email notification",
            to=", ".join(message.recipients),
            subject=message.subject,
            body=message.body,
        )

    async def verify(self) -> bool:
        return True

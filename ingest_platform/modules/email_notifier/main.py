"""Email Notifier worker.

Consumes processing notifications and emails the administrator for every
created account.

Topics consumed:
    file-processing-notifications  account_created / processing_error

account_created is rendered and sent through the configured notification
sender when email is enabled, and only logged otherwise. processing_error is
logged. Malformed or unknown notifications are logged and skipped; a failed
send is logged and counted and the loop moves on.
"""

from __future__ import annotations

from typing import Any

from ingest_platform.config.context import ModuleConfig
from ingest_platform.modules.base import AsyncModule
from ingest_platform.pipeline.consumer import TopicConsumer
from ingest_platform.pipeline.email_templates import render_account_created
from ingest_platform.pipeline.errors import StructuralError
from ingest_platform.pipeline.events import ACCOUNT_CREATED, NotificationEvent, decode_notification
from ingest_platform.pipeline.topics import FILE_PROCESSING_NOTIFICATIONS
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.factory import LoggerFactory
from ingest_platform.services.logger.interface import LoggingInterface
from ingest_platform.services.message_queue.interface import MessageQueueInterface
from ingest_platform.services.metrics.interface import MetricsInterface
from ingest_platform.services.notifier.interface import NotificationSenderInterface

_SERVICE = "email_notifier"


class EmailNotifierModule(AsyncModule):
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        mq: MessageQueueInterface,
        notifier: NotificationSenderInterface,
        lifecycle: LifecycleManager,
        metrics: MetricsInterface,
    ) -> None:
        self.config = config
        self.logger = logger
        self.mq = mq
        self.notifier = notifier
        self.lifecycle = lifecycle
        self.metrics = metrics

    async def initialize(self) -> None:
        self.log = self.logger.create()
        self.topic: str = self.config.get("notification-topic", FILE_PROCESSING_NOTIFICATIONS)
        self.admin_email: str = self.config.get("admin-email", "") or ""
        self.email_enabled = self.config.get_bool("email-enabled")

        if self.email_enabled and not await self.notifier.verify():
            # Sends are still attempted; each failure is logged on its own
            self.log.warn("Email transport verification failed", module=_SERVICE)

        self.consumer = TopicConsumer(
            self.mq, self.topic, self.handle_message,
            self.lifecycle, self.log, self.metrics, name=_SERVICE,
        )
        await self.consumer.start()
        self.lifecycle.on_shutdown(self.consumer.stop)
        self.log.info(
            "Email notifier initialized",
            module=_SERVICE,
            topic=self.topic,
            email_enabled=self.email_enabled,
        )

    async def validate(self) -> None:
        if not self.topic:
            raise ValueError("notification-topic must be non-empty")
        if self.email_enabled and "@" not in self.admin_email:
            raise ValueError("admin-email must be an email address when email is enabled")

    async def execute(self) -> int:
        self.log.info("Email notifier running", module=_SERVICE)
        await self.consumer.run()
        return 0

    async def handle_message(self, raw: Any) -> None:
        try:
            notification = decode_notification(raw)
        except StructuralError as exc:
            self.log.warn("Rejected malformed notification", module=_SERVICE, error=str(exc))
            self.metrics.counter("notifications_skipped_total", tags={"reason": "malformed"})
            return

        self.metrics.counter("notifications_received_total", tags={"type": notification.type})
        if notification.type == ACCOUNT_CREATED:
            await self._account_created(notification)
        else:
            self.log.error(
                "File processing error",
                module=_SERVICE,
                file_id=notification.subject_id,
                file_name=notification.name,
                error=notification.error,
            )

    async def _account_created(self, notification: NotificationEvent) -> None:
        self.log.info(
            "Account created",
            module=_SERVICE,
            account_id=notification.subject_id,
            name=notification.name,
            email=notification.email,
        )
        if not self.email_enabled:
            self.log.info(
                "Email notifications are disabled",
                module=_SERVICE,
                account_id=notification.subject_id,
            )
            return

        message = render_account_created(notification, self.admin_email)
        try:
            await self.notifier.send(message)
        except Exception as exc:
            self.log.error(
                "Email send failed",
                module=_SERVICE,
                account_id=notification.subject_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.metrics.counter("emails_failed_total")
            return
        self.metrics.counter("emails_sent_total")
        self.log.info(
            "Email sent",
            module=_SERVICE,
            account_id=notification.subject_id,
            to=self.admin_email,
        )


module_class = EmailNotifierModule

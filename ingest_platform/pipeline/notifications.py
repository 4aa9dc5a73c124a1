from __future__ import annotations

import asyncio

from ingest_platform.pipeline.errors import PublishError
from ingest_platform.pipeline.events import NotificationEvent
from ingest_platform.services.message_queue.interface import DeliveryError, MessageQueueInterface


class NotificationPublisher:
    """Publishes notification events keyed by subject id.

    The broker round-trip blocks, so it runs in a worker thread.
    """

    def __init__(self, mq: MessageQueueInterface, topic: str) -> None:
        self.mq = mq
        self.topic = topic

    async def publish(self, event: NotificationEvent) -> None:
        try:
            await asyncio.to_thread(
                self.mq.publish, self.topic, event.to_dict(), event.subject_id
            )
        except DeliveryError as exc:
            raise PublishError(f"Notification {event.type} for {event.subject_id} failed: {exc}") from exc

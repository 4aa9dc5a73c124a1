"""Single-topic consumer loop with per-message isolation.

Blocking broker calls (connect, poll, disconnect) run in a worker thread so
the event loop only ever waits on the message currently being handled. A
handler exception is logged and counted; the loop moves on to the next
message. The message is acked only after the handler returns or fails, so a
crash or cancellation mid-handling leaves it to be redelivered. Shutdown is cooperative: ``run`` checks the lifecycle flag between
messages, so an in-flight message always finishes.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Awaitable, Callable

from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.interface import LoggingInterface
from ingest_platform.services.message_queue.interface import MessageQueueInterface
from ingest_platform.services.metrics.interface import MetricsInterface

MessageHandler = Callable[[Any], Awaitable[None]]


class ConsumerState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RUNNING = "running"
    DISCONNECTING = "disconnecting"


class TopicConsumer:
    def __init__(
        self,
        mq: MessageQueueInterface,
        topic: str,
        handler: MessageHandler,
        lifecycle: LifecycleManager,
        log: LoggingInterface,
        metrics: MetricsInterface,
        name: str = "consumer",
        idle_sleep: float = 0.01,
    ) -> None:
        self.mq = mq
        self.topic = topic
        self.handler = handler
        self.lifecycle = lifecycle
        self.log = log
        self.metrics = metrics
        self.name = name
        self.idle_sleep = idle_sleep
        self.state = ConsumerState.DISCONNECTED

    async def start(self) -> None:
        self.state = ConsumerState.CONNECTING
        await asyncio.to_thread(self.mq.connect)
        await asyncio.to_thread(self.mq.subscribe, self.topic)
        self.state = ConsumerState.SUBSCRIBED
        self.log.info("Consumer subscribed", module=self.name, topic=self.topic)

    async def poll_once(self) -> bool:
        """Handle at most one message. Returns False when nothing was pending."""
        raw = await asyncio.to_thread(self.mq.consume_one, self.topic)
        if raw is None:
            return False
        try:
            await self.handler(raw)
        except Exception as exc:
            self.log.error(
                "Message handling failed",
                module=self.name,
                topic=self.topic,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.metrics.counter(
                "messages_failed_total", tags={"service": self.name, "topic": self.topic}
            )
        # A failed message is not retried, so it is acked like a handled one
        await asyncio.to_thread(self.mq.ack, self.topic)
        return True

    async def run(self) -> None:
        if self.state is ConsumerState.DISCONNECTED:
            await self.start()
        self.state = ConsumerState.RUNNING
        while not self.lifecycle.is_shutting_down:
            if not await self.poll_once():
                await asyncio.sleep(self.idle_sleep)
        self.log.info("Consumer loop stopped", module=self.name, topic=self.topic)

    async def stop(self) -> None:
        if self.state is ConsumerState.DISCONNECTED:
            return
        self.state = ConsumerState.DISCONNECTING
        try:
            await asyncio.to_thread(self.mq.disconnect)
        finally:
            self.state = ConsumerState.DISCONNECTED
        self.log.info("Consumer disconnected", module=self.name, topic=self.topic)

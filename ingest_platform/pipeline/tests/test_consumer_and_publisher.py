"""TopicConsumer loop isolation and NotificationPublisher delivery."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ingest_platform.pipeline.consumer import ConsumerState, TopicConsumer
from ingest_platform.pipeline.errors import PublishError
from ingest_platform.pipeline.events import NotificationEvent
from ingest_platform.pipeline.notifications import NotificationPublisher
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.memory_logger import MemoryLogger
from ingest_platform.services.message_queue.interface import DeliveryError
from ingest_platform.services.message_queue.memory_queue import MemoryQueue
from ingest_platform.services.metrics.memory_metrics import MemoryMetrics

TOPIC = "file-uploads"


class FailingQueue(MemoryQueue):
    def publish(self, topic: str, message: Any, key: str | None = None) -> None:
        raise DeliveryError("broker unavailable")


def _consumer(mq: MemoryQueue, handler, lifecycle: LifecycleManager | None = None):
    log = MemoryLogger()
    metrics = MemoryMetrics()
    consumer = TopicConsumer(
        mq, TOPIC, handler, lifecycle or LifecycleManager(), log, metrics, name="test"
    )
    return consumer, log, metrics


async def test_state_transitions():
    mq = MemoryQueue()

    async def handler(raw):
        pass

    consumer, _, _ = _consumer(mq, handler)
    assert consumer.state is ConsumerState.DISCONNECTED
    await consumer.start()
    assert consumer.state is ConsumerState.SUBSCRIBED
    assert mq.connected and TOPIC in mq.subscriptions
    await consumer.stop()
    assert consumer.state is ConsumerState.DISCONNECTED
    assert not mq.connected
    # Second stop is a no-op
    await consumer.stop()


async def test_poll_once_returns_false_when_idle():
    async def handler(raw):
        raise AssertionError("should not be called")

    consumer, _, _ = _consumer(MemoryQueue(), handler)
    assert await consumer.poll_once() is False


async def test_bad_message_does_not_kill_loop():
    mq = MemoryQueue()
    handled: list[Any] = []

    async def handler(raw):
        if raw == "poison":
            raise ValueError("cannot handle poison")
        handled.append(raw)

    consumer, log, metrics = _consumer(mq, handler)
    for msg in ("first", "poison", "last"):
        mq.publish(TOPIC, msg)

    assert await consumer.poll_once() is True
    assert await consumer.poll_once() is True
    assert await consumer.poll_once() is True

    assert handled == ["first", "last"]
    errors = log.at_level("ERROR")
    assert len(errors) == 1
    assert errors[0].ctx["error_type"] == "ValueError"
    assert metrics.series["messages_failed_total{service=test,topic=file-uploads}"] == 1
    assert mq.acked == [TOPIC] * 3


async def test_ack_follows_handler_completion():
    mq = MemoryQueue()
    acked_during_handling: list[list[str]] = []

    async def handler(raw):
        acked_during_handling.append(list(mq.acked))

    consumer, _, _ = _consumer(mq, handler)
    assert await consumer.poll_once() is False
    assert mq.acked == []

    mq.publish(TOPIC, "a")
    assert await consumer.poll_once() is True
    assert acked_during_handling == [[]]
    assert mq.acked == [TOPIC]


async def test_cancelled_handler_is_not_acked():
    mq = MemoryQueue()

    async def handler(raw):
        raise asyncio.CancelledError

    consumer, _, _ = _consumer(mq, handler)
    mq.publish(TOPIC, "a")
    with pytest.raises(asyncio.CancelledError):
        await consumer.poll_once()
    assert mq.acked == []


async def test_run_drains_until_shutdown_requested():
    mq = MemoryQueue()
    lifecycle = LifecycleManager()
    handled: list[Any] = []

    async def handler(raw):
        handled.append(raw)
        if raw == "stop":
            lifecycle.request_shutdown()

    consumer, _, _ = _consumer(mq, handler, lifecycle)
    for msg in ("a", "b", "stop", "never"):
        mq.publish(TOPIC, msg)

    await asyncio.wait_for(consumer.run(), timeout=5)

    assert handled == ["a", "b", "stop"]
    assert consumer.state is ConsumerState.RUNNING
    assert mq.consume_one(TOPIC) == "never"


async def test_publisher_keys_by_subject_id():
    mq = MemoryQueue()
    publisher = NotificationPublisher(mq, "file-processing-notifications")
    event = NotificationEvent(
        type="account_created", subject_id="acc-1", name="Jo",
        email="jo@x.com", processed_at="2026-01-15T10:00:00+00:00",
    )
    await publisher.publish(event)
    topic, payload, key = mq.published[0]
    assert topic == "file-processing-notifications"
    assert key == "acc-1"
    assert payload == event.to_dict()


async def test_publisher_wraps_delivery_errors():
    publisher = NotificationPublisher(FailingQueue(), "file-processing-notifications")
    event = NotificationEvent(
        type="account_created", subject_id="acc-1", name="Jo",
        email="jo@x.com", processed_at="t",
    )
    with pytest.raises(PublishError, match="broker unavailable"):
        await publisher.publish(event)

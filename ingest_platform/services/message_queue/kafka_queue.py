"""Kafka-backed message queue implementation using confluent-kafka.

Producer side is configured as an idempotent producer with a single in-flight
request per connection and ``acks=all``, so broker-side retries after an ack
timeout cannot reorder or duplicate notifications at the producer layer.
Consumer side joins ``MQ_KAFKA_GROUP_ID`` and starts from the latest offset
unless ``MQ_KAFKA_AUTO_OFFSET_RESET`` says otherwise. Offsets are stored only
through ``ack`` once the handler has finished, so auto-commit never moves past
a message that is still being processed.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from ingest_platform.services.message_queue.interface import DeliveryError, MessageQueueInterface
from ingest_platform.services.secrets.interface import SecretsInterface


class KafkaQueue(MessageQueueInterface):
    def __init__(self, secrets: SecretsInterface) -> None:
        self._bootstrap = secrets.get_or_default(
            "MQ_KAFKA_BOOTSTRAP_SERVERS", "localhost:29092"
        )
        self._client_id = secrets.get_or_default("MQ_KAFKA_CLIENT_ID", "file-management-service")
        self._group_id = secrets.get_or_default(
            "MQ_KAFKA_GROUP_ID", f"{self._client_id}-group"
        )
        self._poll_timeout = float(secrets.get_or_default("MQ_KAFKA_POLL_TIMEOUT", "1.0"))
        self._offset_reset = secrets.get_or_default("MQ_KAFKA_AUTO_OFFSET_RESET", "latest")
        self._session_timeout_ms = secrets.get_int("MQ_KAFKA_SESSION_TIMEOUT_MS", 30000)
        self._heartbeat_ms = secrets.get_int("MQ_KAFKA_HEARTBEAT_INTERVAL_MS", 3000)
        self._delivery_timeout = float(secrets.get_or_default("MQ_KAFKA_DELIVERY_TIMEOUT", "30"))
        self._producer: Any = None
        self._consumer: Any = None
        self._handlers: dict[str, list[Callable[[Any], None]]] = {}
        self._subscribed_topics: set[str] = set()
        self._topic_buffer: dict[str, list[Any]] = {}
        self._unacked: dict[str, Any] = {}

    def producer_config(self) -> dict[str, Any]:
        return {
            "bootstrap.servers": self._bootstrap,
            "client.id": self._client_id,
            "enable.idempotence": True,
            "acks": "all",
            "max.in.flight.requests.per.connection": 1,
            "retries": 5,
            "retry.backoff.ms": 300,
        }

    def consumer_config(self) -> dict[str, Any]:
        return {
            "bootstrap.servers": self._bootstrap,
            "client.id": self._client_id,
            "group.id": self._group_id,
            "auto.offset.reset": self._offset_reset,
            "session.timeout.ms": self._session_timeout_ms,
            "heartbeat.interval.ms": self._heartbeat_ms,
            "enable.auto.offset.store": False,
        }

    def connect(self) -> None:
        from confluent_kafka import Consumer, Producer

        if self._producer is None:
            self._producer = Producer(self.producer_config())
        if self._consumer is None:
            self._consumer = Consumer(self.consumer_config())
            if self._subscribed_topics:
                self._consumer.subscribe(sorted(self._subscribed_topics))

    def disconnect(self) -> None:
        if self._producer:
            self._producer.flush(timeout=10)
            self._producer = None
        if self._consumer:
            self._consumer.close()
            self._consumer = None
        self._unacked.clear()
        self._topic_buffer.clear()

    def publish(self, topic: str, message: Any, key: str | None = None) -> None:
        if self._producer is None:
            self.connect()
        if isinstance(message, bytes):
            payload = message
        else:
            payload = json.dumps(message).encode("utf-8")
        key_bytes = key.encode("utf-8") if key else None

        failures: list[Any] = []

        def _on_delivery(err: Any, _msg: Any) -> None:
            if err is not None:
                failures.append(err)

        try:
            self._producer.produce(topic, value=payload, key=key_bytes, on_delivery=_on_delivery)
        except (BufferError, ValueError) as exc:
            raise DeliveryError(f"Produce to {topic} failed: {exc}") from exc
        except Exception as exc:
            # KafkaException; imported lazily like the client itself
            raise DeliveryError(f"Produce to {topic} failed: {exc}") from exc

        pending = self._producer.flush(timeout=self._delivery_timeout)
        if failures:
            raise DeliveryError(f"Delivery to {topic} failed: {failures[0]}")
        if pending:
            raise DeliveryError(f"Delivery to {topic} not acknowledged within {self._delivery_timeout}s")

    def subscribe(self, topic: str, handler: Callable[[Any], None] | None = None) -> None:
        if handler is not None:
            self._handlers.setdefault(topic, []).append(handler)
        if self._consumer is None:
            self.connect()
        if topic not in self._subscribed_topics:
            self._subscribed_topics.add(topic)
            self._consumer.subscribe(sorted(self._subscribed_topics))

    def consume_one(self, topic: str) -> Any | None:
        if self._topic_buffer.get(topic):
            return self._deliver(topic, self._topic_buffer[topic].pop(0))

        if topic not in self._subscribed_topics:
            self.subscribe(topic)

        msg = self._consumer.poll(timeout=self._poll_timeout)
        if msg is None or msg.error():
            return None

        msg_topic = msg.topic()
        if msg_topic == topic:
            return self._deliver(topic, msg)
        self._topic_buffer.setdefault(msg_topic, []).append(msg)
        return None

    def _deliver(self, topic: str, msg: Any) -> bytes:
        self._unacked[topic] = msg
        # Tombstones and empty values come through as b"" so the caller can reject them
        value = msg.value() or b""
        self._dispatch(topic, value)
        return value

    def ack(self, topic: str) -> None:
        msg = self._unacked.pop(topic, None)
        if msg is not None and self._consumer is not None:
            # Auto-commit only ever commits offsets stored here
            self._consumer.store_offsets(message=msg)

    def _dispatch(self, topic: str, value: Any) -> None:
        for handler in self._handlers.get(topic, []):
            handler(value)

    def health_check(self) -> bool:
        if self._producer is None:
            return False
        try:
            metadata = self._producer.list_topics(timeout=5)
        except Exception:
            return False
        return metadata is not None

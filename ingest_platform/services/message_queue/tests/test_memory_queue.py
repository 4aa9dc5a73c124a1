from ingest_platform.services.message_queue.memory_queue import MemoryQueue


def test_publish_and_consume():
    mq = MemoryQueue()
    mq.publish("file-uploads", {"fileId": "f-1"})
    assert mq.consume_one("file-uploads") == {"fileId": "f-1"}


def test_consume_returns_none_on_empty():
    assert MemoryQueue().consume_one("file-uploads") is None


def test_fifo_order():
    mq = MemoryQueue()
    mq.publish("file-uploads", "first")
    mq.publish("file-uploads", "second")
    assert mq.consume_one("file-uploads") == "first"
    assert mq.consume_one("file-uploads") == "second"


def test_published_records_keys():
    mq = MemoryQueue()
    mq.publish("file-processing-notifications", {"type": "account_created"}, key="acc-1")
    assert mq.published == [
        ("file-processing-notifications", {"type": "account_created"}, "acc-1")
    ]


def test_subscribe_handler_called():
    mq = MemoryQueue()
    received: list[str] = []
    mq.subscribe("file-uploads", received.append)
    mq.publish("file-uploads", "hello")
    assert received == ["hello"]
    assert "file-uploads" in mq.subscriptions


def test_multiple_topics_isolated():
    mq = MemoryQueue()
    mq.publish("a", "msg_a")
    mq.publish("b", "msg_b")
    assert mq.consume_one("a") == "msg_a"
    assert mq.consume_one("b") == "msg_b"
    assert mq.consume_one("a") is None


def test_connect_flag_and_health():
    mq = MemoryQueue()
    mq.connect()
    assert mq.connected
    mq.disconnect()
    assert not mq.connected
    assert mq.health_check() is True

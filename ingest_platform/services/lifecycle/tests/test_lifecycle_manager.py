"""Tests for LifecycleManager."""

from __future__ import annotations

from ingest_platform.services.health.health_server import HealthCheckServer
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager


async def test_hooks_execute_in_reverse_order() -> None:
    lm = LifecycleManager()
    order: list[str] = []
    lm.on_shutdown(lambda: order.append("db"))
    lm.on_shutdown(lambda: order.append("consumer"))
    await lm.shutdown()
    assert order == ["consumer", "db"]


async def test_hook_failure_is_recorded_and_others_run() -> None:
    lm = LifecycleManager()
    calls: list[str] = []
    lm.on_shutdown(lambda: calls.append("first"))

    def failing_hook() -> None:
        raise RuntimeError("boom")

    lm.on_shutdown(failing_hook)
    lm.on_shutdown(lambda: calls.append("last"))
    await lm.shutdown()
    assert calls == ["last", "first"]
    assert len(lm.errors) == 1
    name, exc = lm.errors[0]
    assert "failing_hook" in name
    assert str(exc) == "boom"


async def test_async_hooks_awaited() -> None:
    lm = LifecycleManager()
    result: list[str] = []

    async def async_hook() -> None:
        result.append("async_done")

    lm.on_shutdown(async_hook)
    await lm.shutdown()
    assert result == ["async_done"]


async def test_request_shutdown_does_not_run_hooks() -> None:
    lm = LifecycleManager()
    hs = HealthCheckServer(port=0)
    lm.set_health_server(hs)
    calls: list[str] = []
    lm.on_shutdown(lambda: calls.append("hook"))

    lm.request_shutdown()

    assert lm.is_shutting_down
    assert hs.is_ready is False
    assert calls == []
    await lm.shutdown()
    assert calls == ["hook"]


async def test_double_shutdown_is_safe() -> None:
    lm = LifecycleManager()
    count = 0

    def hook() -> None:
        nonlocal count
        count += 1

    lm.on_shutdown(hook)
    await lm.shutdown()
    await lm.shutdown()
    assert count == 1

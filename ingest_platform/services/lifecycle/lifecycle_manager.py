"""Centralized shutdown orchestration with signal handling and ordered cleanup hooks.

A signal only flips ``is_shutting_down`` and fails readiness. Consumer loops
poll the flag between messages, so the in-flight message finishes; the runner
then calls ``shutdown()`` to run hooks once the module has returned.
"""

from __future__ import annotations

import asyncio
import inspect
import signal
from typing import Any, Awaitable, Callable, Union

from ingest_platform.services.health.health_server import HealthCheckServer

ShutdownHook = Union[Callable[[], None], Callable[[], Awaitable[None]]]


class LifecycleManager:
    def __init__(self) -> None:
        self._hooks: list[ShutdownHook] = []
        self._shutting_down = False
        self._shutdown_done = False
        self._health_server: HealthCheckServer | None = None
        self.errors: list[tuple[str, BaseException]] = []

    @property
    def is_shutting_down(self) -> bool:
        """Modules poll this to know if they should stop work."""
        return self._shutting_down

    def on_shutdown(self, callback: ShutdownHook) -> None:
        """Register a cleanup callback. Executed in reverse order on shutdown."""
        self._hooks.append(callback)

    def set_health_server(self, server: HealthCheckServer) -> None:
        """Link the health server so shutdown can mark it not-ready."""
        self._health_server = server

    def request_shutdown(self) -> None:
        """Stop accepting new work without running hooks yet."""
        self._shutting_down = True
        if self._health_server:
            self._health_server.mark_not_ready()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register SIGTERM and SIGINT handlers.

        If *loop* is provided, uses loop.add_signal_handler (async-safe).
        Otherwise falls back to signal.signal (sync context).
        """
        for sig in (signal.SIGTERM, signal.SIGINT):
            if loop is not None:
                loop.add_signal_handler(sig, self.request_shutdown)
            else:
                signal.signal(sig, self._handle_signal)

    async def shutdown(self) -> None:
        """Execute the full shutdown sequence once."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        self.request_shutdown()

        for hook in reversed(self._hooks):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                # Recorded for the runner to log; remaining hooks still run
                self.errors.append((getattr(hook, "__qualname__", repr(hook)), exc))

        if self._health_server:
            await self._health_server.stop()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        self.request_shutdown()

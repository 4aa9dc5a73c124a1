"""Accounts API Service.

Read and delete access to imported accounts.

Endpoints::

    GET    /api/accounts                      all accounts, newest first
    GET    /api/accounts/stats                {total}
    GET    /api/accounts/{account_id}
    GET    /api/accounts/username/{user_name}
    DELETE /api/accounts/{account_id}
    GET    /health

Every response is ``{"success": bool, ...}``. Missing accounts answer 404 with a
``message``; unexpected storage errors answer 500 with ``message`` and ``error``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import date, datetime, timezone

from aiohttp import web

from ingest_platform.config.context import ModuleConfig
from ingest_platform.migrations.runner import MigrationRunner
from ingest_platform.modules.base import AsyncModule
from ingest_platform.pipeline.account_repository import AccountRepository
from ingest_platform.services.database.interface import DatabaseInterface
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.factory import LoggerFactory
from ingest_platform.services.logger.interface import LoggingInterface
from ingest_platform.services.metrics.interface import MetricsInterface

_SERVICE = "accounts_api"
_NOT_FOUND = "Account not found"


def _json_default(obj: object) -> str:
    """JSON serializer for types not handled by the default encoder."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _dumps(obj: object) -> str:
    return json.dumps(obj, default=_json_default)


def _respond(data: dict, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


class AccountsApiModule(AsyncModule):
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        db: DatabaseInterface,
        lifecycle: LifecycleManager,
        metrics: MetricsInterface,
    ) -> None:
        self.config = config
        self.logger = logger
        self.db = db
        self.lifecycle = lifecycle
        self.metrics = metrics
        self._runner: web.AppRunner | None = None

    async def initialize(self) -> None:
        self.log = self.logger.create()
        self.port = self.config.get_int("port", 3002)
        await self.db.connect_async()
        self.lifecycle.on_shutdown(self.db.disconnect_async)
        if self.config.get_bool("migrate"):
            applied = await MigrationRunner(self.db).up()
            self.log.info("Migrations applied", module=_SERVICE, applied=applied)
        self.repository = AccountRepository(self.db)
        # Stops serving before the database goes away
        self.lifecycle.on_shutdown(self._stop_server)
        self.log.info("Accounts API initialized", module=_SERVICE, port=self.port)

    async def validate(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")

    async def execute(self) -> int:
        self._runner = web.AppRunner(self._create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        self.log.info("Accounts API listening", module=_SERVICE, port=self.port)

        while not self.lifecycle.is_shutting_down:
            await asyncio.sleep(0.1)
        return 0

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health)
        app.router.add_get("/api/accounts", self._list_accounts)
        # Registered before the {account_id} route, which would match "stats"
        app.router.add_get("/api/accounts/stats", self._stats)
        app.router.add_get("/api/accounts/username/{user_name}", self._get_by_user_name)
        app.router.add_get("/api/accounts/{account_id}", self._get_account)
        app.router.add_delete("/api/accounts/{account_id}", self._delete_account)
        return app

    # ── Endpoints ─────────────────────────────────────────────────────────────

    async def _health(self, request: web.Request) -> web.Response:
        return _respond({
            "status": "OK",
            "service": _SERVICE,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    async def _list_accounts(self, request: web.Request) -> web.Response:
        self._count_request("/api/accounts", "GET")
        try:
            accounts = await self.repository.list_all()
        except Exception as exc:
            return self._server_error("Error fetching accounts", exc, request)
        return _respond({
            "success": True,
            "count": len(accounts),
            "data": [a.to_dict() for a in accounts],
        })

    async def _stats(self, request: web.Request) -> web.Response:
        self._count_request("/api/accounts/stats", "GET")
        try:
            total = await self.repository.count()
        except Exception as exc:
            return self._server_error("Error fetching account stats", exc, request)
        return _respond({"success": True, "data": {"total": total}})

    async def _get_account(self, request: web.Request) -> web.Response:
        self._count_request("/api/accounts/{account_id}", "GET")
        try:
            account = await self.repository.get_by_id(request.match_info["account_id"])
        except Exception as exc:
            return self._server_error("Error fetching account", exc, request)
        if account is None:
            return _respond({"success": False, "message": _NOT_FOUND}, status=404)
        return _respond({"success": True, "data": account.to_dict()})

    async def _get_by_user_name(self, request: web.Request) -> web.Response:
        self._count_request("/api/accounts/username/{user_name}", "GET")
        try:
            account = await self.repository.get_by_user_name(request.match_info["user_name"])
        except Exception as exc:
            return self._server_error("Error fetching account", exc, request)
        if account is None:
            return _respond({"success": False, "message": _NOT_FOUND}, status=404)
        return _respond({"success": True, "data": account.to_dict()})

    async def _delete_account(self, request: web.Request) -> web.Response:
        self._count_request("/api/accounts/{account_id}", "DELETE")
        account_id = request.match_info["account_id"]
        try:
            deleted = await self.repository.delete(account_id)
        except Exception as exc:
            return self._server_error("Error deleting account", exc, request)
        if not deleted:
            return _respond({"success": False, "message": _NOT_FOUND}, status=404)
        self.log.info("Account deleted", module=_SERVICE, account_id=account_id)
        return _respond({"success": True, "message": "Account deleted successfully"})

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _count_request(self, endpoint: str, method: str) -> None:
        self.metrics.counter(
            "http_requests_total",
            tags={"service": _SERVICE, "endpoint": endpoint, "method": method},
        )

    def _server_error(self, message: str, exc: Exception, request: web.Request) -> web.Response:
        self.log.error(
            message,
            module=_SERVICE,
            path=request.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return _respond({"success": False, "message": message, "error": str(exc)}, status=500)

    async def _stop_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None


module_class = AccountsApiModule

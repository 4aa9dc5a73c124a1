from __future__ import annotations

import asyncio
from typing import Any

import asyncpg

from ingest_platform.services.database.interface import DatabaseInterface, UniqueViolation
from ingest_platform.services.secrets.interface import SecretsInterface


class PostgresDatabase(DatabaseInterface):
    """PostgreSQL implementation using asyncpg with connection pooling.

    The async variants are native; the sync methods drive them on the current
    event loop and are only meant for scripts outside a running loop.
    """

    def __init__(self, secrets: SecretsInterface) -> None:
        self._secrets = secrets
        self._pool: asyncpg.Pool | None = None

    # -- Connection management ------------------------------------------------

    async def connect_async(self) -> None:
        url = self._secrets.require("DB_POSTGRES_URL")
        min_size = self._secrets.get_int("DB_POSTGRES_POOL_MIN", 2)
        max_size = self._secrets.get_int("DB_POSTGRES_POOL_MAX", 10)
        timeout = self._secrets.get_int("DB_POSTGRES_STATEMENT_TIMEOUT", 30000)
        self._pool = await asyncpg.create_pool(
            url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=timeout / 1000,
        )

    async def disconnect_async(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    def is_connected(self) -> bool:
        return self._pool is not None

    def _check_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._pool

    # -- Query methods (async) ------------------------------------------------

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        async with self._check_pool().acquire() as conn:
            result = await conn.execute(query, *(params or []))
        # asyncpg returns e.g. "DELETE 1"; extract affected count
        parts = result.split()
        return int(parts[-1]) if parts and parts[-1].isdigit() else 0

    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        async with self._check_pool().acquire() as conn:
            row = await conn.fetchrow(query, *(params or []))
        return dict(row) if row else None

    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        async with self._check_pool().acquire() as conn:
            rows = await conn.fetch(query, *(params or []))
        return [dict(r) for r in rows]

    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        columns = list(row.keys())
        placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
        query = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        try:
            return await self.execute_async(query, [row[c] for c in columns])
        except asyncpg.UniqueViolationError as exc:
            raise UniqueViolation(
                table=exc.table_name or table,
                constraint=exc.constraint_name or "",
                column=exc.column_name,
            ) from exc

    async def health_check_async(self) -> bool:
        try:
            async with self._check_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (asyncpg.PostgresError, OSError, RuntimeError):
            return False

    # -- Sync interface (wraps async) -----------------------------------------

    def _run(self, coro: Any) -> Any:
        return asyncio.get_event_loop().run_until_complete(coro)

    def connect(self) -> None:
        self._run(self.connect_async())

    def disconnect(self) -> None:
        self._run(self.disconnect_async())

    def execute(self, query: str, params: list[Any] | None = None) -> int:
        return self._run(self.execute_async(query, params))

    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        return self._run(self.fetch_one_async(query, params))

    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        return self._run(self.fetch_all_async(query, params))

    def insert_one(self, table: str, row: dict[str, Any]) -> int:
        return self._run(self.insert_one_async(table, row))

    def health_check(self) -> bool:
        return self._run(self.health_check_async())

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class UniqueViolation(Exception):
    """A write hit a UNIQUE constraint.

    ``constraint`` is the storage-level constraint name (for example
    ``accounts_email_key``); ``column`` is the constrained column when the
    backend reports it.
    """

    def __init__(self, table: str, constraint: str, column: str | None = None) -> None:
        self.table = table
        self.constraint = constraint
        self.column = column
        super().__init__(f"duplicate key value violates unique constraint \"{constraint}\"")


class DatabaseInterface(ABC):
    """Abstract interface for relational data access."""

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def execute(self, query: str, params: list[Any] | None = None) -> int:
        """Execute a query, return rows affected."""
        ...

    @abstractmethod
    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        """Fetch a single row as a dict. Returns None if no rows."""
        ...

    @abstractmethod
    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        """Fetch all rows as a list of dicts."""
        ...

    @abstractmethod
    def insert_one(self, table: str, row: dict[str, Any]) -> int:
        """Insert a single row. Raises UniqueViolation on a UNIQUE conflict."""
        ...

    @abstractmethod
    def health_check(self) -> bool: ...

    # -- Async wrappers -------------------------------------------------------
    # Concrete defaults so callers can always use the async API.
    # PostgresDatabase overrides these with native asyncpg calls.

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        return self.execute(query, params)

    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        return self.fetch_one(query, params)

    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        return self.fetch_all(query, params)

    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        return self.insert_one(table, row)

    async def connect_async(self) -> None:
        self.connect()

    async def disconnect_async(self) -> None:
        self.disconnect()

    async def health_check_async(self) -> bool:
        return self.health_check()

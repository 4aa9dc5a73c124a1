from __future__ import annotations

import pytest

from ingest_platform.migrations.runner import MigrationRunner
from ingest_platform.pipeline.account_repository import AccountRepository
from ingest_platform.services.database.memory_database import MemoryDatabase


@pytest.fixture
async def db() -> MemoryDatabase:
    """Connected in-memory database with the accounts schema applied."""
    database = MemoryDatabase()
    await database.connect_async()
    await MigrationRunner(database).up()
    return database


@pytest.fixture
def repository(db: MemoryDatabase) -> AccountRepository:
    return AccountRepository(db)

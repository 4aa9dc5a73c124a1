"""Migration runner: discovers, applies, and rolls back SQL-based database migrations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ingest_platform.services.database.interface import DatabaseInterface

MIGRATIONS_DIR = Path(__file__).resolve().parent

TRACKING_TABLE = "_migrations"

CREATE_TRACKING = f"""
CREATE TABLE IF NOT EXISTS {TRACKING_TABLE} (
    name TEXT NOT NULL PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""


@dataclass
class MigrationStatus:
    name: str
    applied: bool
    applied_at: str | None = None


@dataclass
class SqlMigration:
    name: str
    number: int
    up_sql: str
    down_sql: str


def discover_sql_migrations(db_name: str) -> list[SqlMigration]:
    """Scan ingest_platform/migrations/<db_name>/ for NNN_name.up.sql / .down.sql pairs."""
    migrations_dir = MIGRATIONS_DIR / db_name
    if not migrations_dir.exists():
        return []

    pattern = re.compile(r"^(\d{3})_(.+)\.up\.sql$")
    migrations: list[SqlMigration] = []

    for path in sorted(migrations_dir.glob("*.up.sql")):
        match = pattern.match(path.name)
        if not match:
            continue
        base_name = f"{match.group(1)}_{match.group(2)}"
        down_path = migrations_dir / f"{base_name}.down.sql"

        if not down_path.exists():
            raise FileNotFoundError(
                f"Migration {path.name} is missing its .down.sql counterpart"
            )

        migrations.append(SqlMigration(
            name=base_name,
            number=int(match.group(1)),
            up_sql=path.read_text(),
            down_sql=down_path.read_text(),
        ))

    migrations.sort(key=lambda m: m.number)
    return migrations


class MigrationRunner:
    def __init__(self, db: DatabaseInterface, db_name: str = "accounts") -> None:
        self._db = db
        self._db_name = db_name

    async def ensure_tracking_table(self) -> None:
        await self._db.execute_async(CREATE_TRACKING)

    async def get_applied(self) -> set[str]:
        rows = await self._db.fetch_all_async(f"SELECT * FROM {TRACKING_TABLE}")
        return {r["name"] for r in rows}

    async def up(self, target: int | None = None) -> list[str]:
        """Apply pending migrations. Returns list of applied migration names."""
        await self.ensure_tracking_table()
        applied = await self.get_applied()
        applied_names: list[str] = []

        for migration in discover_sql_migrations(self._db_name):
            if target is not None and migration.number > target:
                break
            if migration.name in applied:
                continue
            for statement in _split_statements(migration.up_sql):
                await self._db.execute_async(statement)
            now = datetime.now(timezone.utc).isoformat()
            await self._db.insert_one_async(
                TRACKING_TABLE, {"name": migration.name, "applied_at": now}
            )
            applied_names.append(migration.name)

        return applied_names

    async def down(self, count: int = 1) -> list[str]:
        """Roll back the last `count` migrations. Returns list of rolled-back names."""
        await self.ensure_tracking_table()
        applied = await self.get_applied()
        all_migrations = discover_sql_migrations(self._db_name)

        to_rollback = [m for m in reversed(all_migrations) if m.name in applied][:count]
        rolled_back: list[str] = []

        for migration in to_rollback:
            for statement in _split_statements(migration.down_sql):
                await self._db.execute_async(statement)
            await self._db.execute_async(
                f"DELETE FROM {TRACKING_TABLE} WHERE name = $1", [migration.name]
            )
            rolled_back.append(migration.name)

        return rolled_back

    async def status(self) -> list[MigrationStatus]:
        """Return status of all known migrations."""
        await self.ensure_tracking_table()
        applied_rows = await self._db.fetch_all_async(f"SELECT * FROM {TRACKING_TABLE}")
        applied_map: dict[str, str] = {r["name"]: r["applied_at"] for r in applied_rows}

        return [
            MigrationStatus(
                name=m.name,
                applied=m.name in applied_map,
                applied_at=applied_map.get(m.name),
            )
            for m in discover_sql_migrations(self._db_name)
        ]


def _split_statements(sql: str) -> list[str]:
    """Split SQL text into individual statements, filtering empty ones."""
    return [s.strip() for s in sql.split(";") if s.strip()]

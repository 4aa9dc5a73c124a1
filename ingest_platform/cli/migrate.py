"""CLI subcommand for database migrations."""

from __future__ import annotations

import asyncio
import sys
from typing import Any

from ingest_platform.config.container import Container
from ingest_platform.config.env_loader import load_env_file
from ingest_platform.migrations.runner import MIGRATIONS_DIR, MigrationRunner
from ingest_platform.services.database.interface import DatabaseInterface
from ingest_platform.services.registry import resolve_implementation
from ingest_platform.services.secrets.env_secrets import EnvSecrets
from ingest_platform.services.secrets.interface import SecretsInterface

USAGE = "Usage: python -m ingest_platform migrate <up|down|status|create> [options]"


def _parse_migrate_args(argv: list[str]) -> dict[str, Any]:
    """Parse migrate subcommand arguments."""
    if not argv:
        raise ValueError(USAGE)

    args: dict[str, Any] = {
        "command": argv[0],
        "target": None,
        "count": 1,
        "name": None,
        "db": "memory",
        "db_name": "accounts",
        "env_file": None,
    }
    i = 1
    while i < len(argv):
        flag = argv[i]
        if flag == "--target" and i + 1 < len(argv):
            args["target"] = int(argv[i + 1])
            i += 2
        elif flag == "--count" and i + 1 < len(argv):
            args["count"] = int(argv[i + 1])
            i += 2
        elif flag == "--db" and i + 1 < len(argv):
            args["db"] = argv[i + 1]
            i += 2
        elif flag == "--schema" and i + 1 < len(argv):
            args["db_name"] = argv[i + 1]
            i += 2
        elif flag == "--env-file" and i + 1 < len(argv):
            args["env_file"] = argv[i + 1]
            i += 2
        else:
            # Positional arg (migration name for 'create')
            if args["name"] is None:
                args["name"] = argv[i]
            i += 1
    return args


def _build_db(impl_name: str, env_file: str | None) -> DatabaseInterface:
    overrides = load_env_file(env_file) if env_file else {}
    container = Container()
    container.register_instance(SecretsInterface, EnvSecrets(overrides=overrides))
    return container.resolve(resolve_implementation("db", impl_name))


async def _run(args: dict[str, Any]) -> int:
    db = _build_db(args["db"], args["env_file"])
    await db.connect_async()
    try:
        runner = MigrationRunner(db, db_name=args["db_name"])
        command = args["command"]

        if command == "up":
            applied = await runner.up(target=args["target"])
            if applied:
                for name in applied:
                    print(f"  Applied: {name}")
                print(f"\n{len(applied)} migration(s) applied.")
            else:
                print("No pending migrations.")
            return 0

        if command == "down":
            rolled_back = await runner.down(count=args["count"])
            if rolled_back:
                for name in rolled_back:
                    print(f"  Rolled back: {name}")
                print(f"\n{len(rolled_back)} migration(s) rolled back.")
            else:
                print("No migrations to roll back.")
            return 0

        if command == "status":
            statuses = await runner.status()
            if not statuses:
                print("No migrations found.")
                return 0
            print(f"{'Migration':<45} {'Status':<10} {'Applied At'}")
            print("-" * 80)
            for s in statuses:
                status = "applied" if s.applied else "pending"
                print(f"{s.name:<45} {status:<10} {s.applied_at or ''}")
            return 0

        print(f"Unknown migrate command: {command}", file=sys.stderr)
        return 1
    finally:
        await db.disconnect_async()


def run_migrate(argv: list[str]) -> int:
    """Entry point for the migrate subcommand."""
    try:
        args = _parse_migrate_args(argv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args["command"] == "create":
        return _create_migration(args["name"], args["db_name"])
    return asyncio.run(_run(args))


def _create_migration(name: str | None, db_name: str) -> int:
    """Create an empty up/down SQL pair with the next migration number."""
    if not name:
        print("Usage: python -m ingest_platform migrate create <name>", file=sys.stderr)
        return 1

    migrations_dir = MIGRATIONS_DIR / db_name
    migrations_dir.mkdir(parents=True, exist_ok=True)
    existing = sorted(migrations_dir.glob("[0-9][0-9][0-9]_*.up.sql"))
    next_num = int(existing[-1].name[:3]) + 1 if existing else 1

    base = f"{next_num:03d}_{name}"
    (migrations_dir / f"{base}.up.sql").write_text(f"-- {name.replace('_', ' ')}\n")
    (migrations_dir / f"{base}.down.sql").write_text(f"-- revert {name.replace('_', ' ')}\n")

    print(f"Created: {migrations_dir / base}.up.sql")
    return 0

import re
from typing import Any

from ingest_platform.services.database.interface import DatabaseInterface, UniqueViolation

_CREATE_TABLE = re.compile(r"(?is)CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?(\w+)\s*\((.*)\)")
_UNIQUE_CONSTRAINT = re.compile(r"(?i)CONSTRAINT\s+(\w+)\s+UNIQUE\s*\(\s*(\w+)\s*\)")
_PRIMARY_KEY_COLUMN = re.compile(r"(?im)^\s*(\w+)\s+\w+[^,]*\bPRIMARY\s+KEY\b")
_DROP_TABLE = re.compile(r"(?i)DROP\s+TABLE\s+(?:IF\s+EXISTS\s+)?(\w+)")
_DELETE = re.compile(r"(?i)DELETE\s+FROM\s+(\w+)\s+WHERE\s+(\w+)\s*=\s*\$1")
_SELECT = re.compile(r"(?i)SELECT\s+(.+?)\s+FROM\s+(\w+)")
_WHERE = re.compile(r"(?i)WHERE\s+(\w+)\s*=\s*\$1")
_ORDER_BY = re.compile(r"(?i)ORDER\s+BY\s+(\w+)(?:\s+(ASC|DESC))?")
_COUNT = re.compile(r"(?i)COUNT\(\*\)(?:\s+AS\s+(\w+))?")


class MemoryDatabase(DatabaseInterface):
    """In-memory database for unit testing.

    Tables are lists of dicts. ``CREATE TABLE`` statements are parsed just far
    enough to pick up the primary key and named ``CONSTRAINT x UNIQUE (col)``
    clauses, which ``insert_one`` then enforces the way Postgres would, so the
    repository's conflict handling runs against the same contract in tests.

    Supported reads: ``SELECT * | COUNT(*) [AS n] FROM t [WHERE col = $1]
    [ORDER BY col [ASC|DESC]]``. Supported writes: ``DELETE FROM t WHERE
    col = $1``, ``DROP TABLE``. Other statements are accepted as no-ops.
    """

    def __init__(self) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        # table -> [(constraint_name, column)]
        self._unique: dict[str, list[tuple[str, str]]] = {}
        self._connected = False

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def execute(self, query: str, params: list[Any] | None = None) -> int:
        self._check_connected()
        q = query.strip()

        create_match = _CREATE_TABLE.match(q)
        if create_match:
            self._create_table(create_match.group(1), create_match.group(2))
            return 0

        drop_match = _DROP_TABLE.match(q)
        if drop_match:
            table = drop_match.group(1)
            self._tables.pop(table, None)
            self._unique.pop(table, None)
            return 0

        delete_match = _DELETE.match(q)
        if delete_match and params:
            table, col = delete_match.group(1), delete_match.group(2)
            rows = self._tables.get(table, [])
            before = len(rows)
            self._tables[table] = [r for r in rows if r.get(col) != params[0]]
            return before - len(self._tables[table])

        return 0

    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        self._check_connected()
        rows = self._query(query, params)
        return rows[0] if rows else None

    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        self._check_connected()
        return self._query(query, params)

    def insert_one(self, table: str, row: dict[str, Any]) -> int:
        self._check_connected()
        rows = self._tables.setdefault(table, [])
        for constraint, column in self._unique.get(table, []):
            value = row.get(column)
            if value is not None and any(r.get(column) == value for r in rows):
                raise UniqueViolation(table, constraint, column)
        rows.append(dict(row))
        return 1

    def health_check(self) -> bool:
        return self._connected

    def _check_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("Database is not connected. Call connect() first.")

    def _create_table(self, table: str, body: str) -> None:
        self._tables.setdefault(table, [])
        constraints = [(m.group(1), m.group(2)) for m in _UNIQUE_CONSTRAINT.finditer(body)]
        pk = _PRIMARY_KEY_COLUMN.search(body)
        if pk:
            constraints.insert(0, (f"{table}_pkey", pk.group(1)))
        self._unique[table] = constraints

    def _query(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        select_match = _SELECT.match(query.strip())
        if not select_match:
            return []
        projection, table = select_match.group(1), select_match.group(2)
        rows = list(self._tables.get(table, []))

        where_match = _WHERE.search(query)
        if where_match and params:
            col = where_match.group(1)
            rows = [r for r in rows if r.get(col) == params[0]]

        count_match = _COUNT.match(projection)
        if count_match:
            return [{count_match.group(1) or "count": len(rows)}]

        order_match = _ORDER_BY.search(query)
        if order_match:
            col = order_match.group(1)
            descending = (order_match.group(2) or "").upper() == "DESC"
            rows.sort(key=lambda r: r.get(col), reverse=descending)

        return [dict(r) for r in rows]

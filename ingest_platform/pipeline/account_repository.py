"""Account persistence over DatabaseInterface.

Uniqueness of user_name, email, mac and account_number lives in the
``accounts`` table constraints. ``find_conflict`` is a fast pre-check; the
constraint is what actually holds when two writers race between the check
and the insert, and ``create`` reports that case as a ConflictError.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from ingest_platform.pipeline.errors import ConflictError, ValidationError
from ingest_platform.pipeline.records import UNIQUE_FIELDS, CandidateAccount, PersistedAccount
from ingest_platform.services.database.interface import DatabaseInterface, UniqueViolation

TABLE = "accounts"

_CONSTRAINT_FIELDS: dict[str, str] = {
    f"{TABLE}_{field}_key": field for field in UNIQUE_FIELDS
}
_CONSTRAINT_FIELDS[f"{TABLE}_pkey"] = "id"


class AccountRepository:
    def __init__(self, db: DatabaseInterface) -> None:
        self.db = db

    async def find_conflict(self, candidate: CandidateAccount) -> PersistedAccount | None:
        """Return the first persisted account sharing a unique field, by field priority."""
        for field in UNIQUE_FIELDS:
            row = await self.db.fetch_one_async(
                f"SELECT * FROM {TABLE} WHERE {field} = $1", [getattr(candidate, field)]
            )
            if row is not None:
                return PersistedAccount.from_row(row)
        return None

    async def create(self, candidate: CandidateAccount) -> PersistedAccount:
        problem = candidate.validation_problem()
        if problem is not None:
            raise ValidationError(problem)

        now = datetime.now(timezone.utc)
        account = PersistedAccount(
            id=uuid.uuid4().hex,
            created_at=now,
            updated_at=now,
            **candidate.to_dict(),
        )
        try:
            await self.db.insert_one_async(TABLE, account.to_dict())
        except UniqueViolation as exc:
            field = _CONSTRAINT_FIELDS.get(exc.constraint) or exc.column or "unknown"
            raise ConflictError(field, f"{field} already exists") from exc
        return account

    @staticmethod
    def get_existing_field(existing: PersistedAccount, candidate: CandidateAccount) -> str:
        """Name the first unique field the two records share."""
        for field in UNIQUE_FIELDS:
            if getattr(existing, field) == getattr(candidate, field):
                return field
        return "unknown"

    # -- Reads for the accounts API -------------------------------------------

    async def list_all(self) -> list[PersistedAccount]:
        rows = await self.db.fetch_all_async(f"SELECT * FROM {TABLE} ORDER BY created_at DESC")
        return [PersistedAccount.from_row(r) for r in rows]

    async def get_by_id(self, account_id: str) -> PersistedAccount | None:
        row = await self.db.fetch_one_async(f"SELECT * FROM {TABLE} WHERE id = $1", [account_id])
        return PersistedAccount.from_row(row) if row else None

    async def get_by_user_name(self, user_name: str) -> PersistedAccount | None:
        row = await self.db.fetch_one_async(
            f"SELECT * FROM {TABLE} WHERE user_name = $1", [user_name]
        )
        return PersistedAccount.from_row(row) if row else None

    async def delete(self, account_id: str) -> bool:
        deleted = await self.db.execute_async(f"DELETE FROM {TABLE} WHERE id = $1", [account_id])
        return deleted > 0

    async def count(self) -> int:
        row = await self.db.fetch_one_async(f"SELECT COUNT(*) AS count FROM {TABLE}")
        return int(row["count"]) if row else 0

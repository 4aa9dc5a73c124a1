from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ingest_platform.pipeline.account_repository import AccountRepository
from ingest_platform.pipeline.errors import ConflictError, ValidationError
from ingest_platform.pipeline.records import CandidateAccount, PersistedAccount
from ingest_platform.services.database.memory_database import MemoryDatabase


def _candidate(n: int = 1, **overrides: str) -> CandidateAccount:
    fields = {
        "name": f"User {n}",
        "user_name": f"user{n}",
        "email": f"user{n}@x.com",
        "ip": f"10.0.0.{n}",
        "mac": f"AA:BB:CC:DD:EE:{n:02X}",
        "account_number": f"ACC{n}",
    }
    fields.update(overrides)
    return CandidateAccount(**fields)


async def test_create_assigns_id_and_timestamps(repository: AccountRepository):
    account = await repository.create(_candidate())
    assert len(account.id) == 32
    assert account.created_at == account.updated_at
    assert account.created_at.tzinfo is not None
    assert await repository.get_by_id(account.id) == account


async def test_create_rejects_malformed_candidate(repository: AccountRepository):
    with pytest.raises(ValidationError, match="email"):
        await repository.create(_candidate(email="nope"))
    assert await repository.count() == 0


async def test_find_conflict_none_when_unique(repository: AccountRepository):
    await repository.create(_candidate(1))
    assert await repository.find_conflict(_candidate(2)) is None


@pytest.mark.parametrize("field", ["user_name", "email", "mac", "account_number"])
async def test_find_conflict_on_each_unique_field(repository: AccountRepository, field: str):
    existing = await repository.create(_candidate(1))
    candidate = _candidate(2, **{field: getattr(existing, field)})
    found = await repository.find_conflict(candidate)
    assert found is not None and found.id == existing.id
    assert repository.get_existing_field(found, candidate) == field


async def test_find_conflict_priority_order(repository: AccountRepository):
    by_email = await repository.create(_candidate(1))
    by_user = await repository.create(_candidate(2))
    candidate = _candidate(3, user_name=by_user.user_name, email=by_email.email)
    found = await repository.find_conflict(candidate)
    assert found is not None and found.id == by_user.id


def test_get_existing_field_unknown():
    a = _candidate(1)
    b = _candidate(2)
    now = datetime.now(timezone.utc)
    persisted = PersistedAccount(id="x", created_at=now, updated_at=now, **a.to_dict())
    assert AccountRepository.get_existing_field(persisted, b) == "unknown"


@pytest.mark.parametrize("field", ["user_name", "email", "mac", "account_number"])
async def test_create_race_surfaces_as_conflict_error(repository: AccountRepository, field: str):
    # Simulates a concurrent writer: the pre-check is skipped, the constraint still holds
    existing = await repository.create(_candidate(1))
    with pytest.raises(ConflictError) as exc_info:
        await repository.create(_candidate(2, **{field: getattr(existing, field)}))
    assert exc_info.value.field == field
    assert await repository.count() == 1


async def test_list_all_newest_first(db: MemoryDatabase, repository: AccountRepository):
    for n, day in ((1, 1), (2, 3), (3, 2)):
        row = {
            "id": f"id{n}",
            **_candidate(n).to_dict(),
            "created_at": datetime(2026, 1, day, tzinfo=timezone.utc),
            "updated_at": datetime(2026, 1, day, tzinfo=timezone.utc),
        }
        await db.insert_one_async("accounts", row)
    listed = await repository.list_all()
    assert [a.id for a in listed] == ["id2", "id3", "id1"]


async def test_get_by_user_name_and_delete(repository: AccountRepository):
    account = await repository.create(_candidate(1))
    assert (await repository.get_by_user_name("user1")).id == account.id
    assert await repository.get_by_user_name("missing") is None
    assert await repository.delete(account.id) is True
    assert await repository.delete(account.id) is False
    assert await repository.get_by_id(account.id) is None
    assert await repository.count() == 0

"""Reconciliation scenarios: duplicates, partial failure, reprocessing."""

from __future__ import annotations

from ingest_platform.pipeline.account_repository import AccountRepository
from ingest_platform.pipeline.batch_processor import ALREADY_EXISTS, BatchProcessor
from ingest_platform.pipeline.errors import ConflictError
from ingest_platform.pipeline.records import CandidateAccount
from ingest_platform.services.logger.memory_logger import MemoryLogger
from ingest_platform.services.metrics.memory_metrics import MemoryMetrics

JO = CandidateAccount("Jo", "jo1", "jo@x.com", "10.0.0.1", "AA:BB:CC:DD:EE:FF", "ACC1")
JO_DUP = CandidateAccount("Jo", "jo1", "jo2@x.com", "10.0.0.2", "AA:BB:CC:DD:EE:00", "ACC2")
ANN = CandidateAccount("Ann", "ann", "ann@x.com", "10.0.0.3", "AA:BB:CC:DD:EE:01", "ACC3")
BO = CandidateAccount("Bo", "bo", "bo@x.com", "10.0.0.4", "AA:BB:CC:DD:EE:02", "ACC4")


def _processor(repository: AccountRepository, metrics: MemoryMetrics | None = None) -> BatchProcessor:
    return BatchProcessor(repository, MemoryLogger(), metrics or MemoryMetrics())


async def test_duplicate_user_name_within_batch(repository: AccountRepository):
    result = await _processor(repository).process([JO, JO_DUP])
    assert [a.user_name for a in result.successful] == ["jo1"]
    assert len(result.failed) == 1
    assert result.failed[0].candidate == JO_DUP
    assert result.failed[0].reason == ALREADY_EXISTS
    assert result.failed[0].conflicting_field == "user_name"


async def test_partial_failure_middle_row_collides(repository: AccountRepository):
    existing = await repository.create(
        CandidateAccount("Old", "old", "ann@x.com", "10.0.0.9", "AA:BB:CC:DD:EE:99", "ACC9")
    )
    result = await _processor(repository).process([JO, ANN, BO])
    assert [a.user_name for a in result.successful] == ["jo1", "bo"]
    assert len(result.failed) == 1
    assert result.failed[0].conflicting_field == "email"
    assert existing.email == "ann@x.com"


async def test_reprocessing_same_batch_is_idempotent(repository: AccountRepository):
    processor = _processor(repository)
    first = await processor.process([JO, ANN, BO])
    second = await processor.process([JO, ANN, BO])
    assert len(first.successful) == 3
    assert second.successful == []
    assert [f.reason for f in second.failed] == [ALREADY_EXISTS] * 3
    assert await repository.count() == 3


async def test_uniqueness_invariant_holds(repository: AccountRepository):
    batch = [JO, JO_DUP, ANN, BO, ANN]
    await _processor(repository).process(batch)
    accounts = await repository.list_all()
    for field in ("user_name", "email", "mac", "account_number"):
        values = [getattr(a, field) for a in accounts]
        assert len(values) == len(set(values)), field


async def test_race_on_create_recorded_with_field(repository: AccountRepository):
    class RacingRepository(AccountRepository):
        """find_conflict misses because the rival write lands after the check."""

        async def find_conflict(self, candidate):
            return None

    racing = RacingRepository(repository.db)
    await repository.create(JO)
    result = await _processor(racing).process([JO_DUP, ANN])
    assert [a.user_name for a in result.successful] == ["ann"]
    assert result.failed[0].conflicting_field == "user_name"
    assert result.failed[0].reason == str(ConflictError("user_name"))


async def test_storage_error_does_not_abort_batch(repository: AccountRepository):
    class FlakyRepository(AccountRepository):
        async def create(self, candidate):
            if candidate.user_name == "ann":
                raise ConnectionError("connection reset")
            return await super().create(candidate)

    log = MemoryLogger()
    processor = BatchProcessor(FlakyRepository(repository.db), log, MemoryMetrics())
    result = await processor.process([JO, ANN, BO])
    assert [a.user_name for a in result.successful] == ["jo1", "bo"]
    assert result.failed[0].reason == "connection reset"
    assert result.failed[0].conflicting_field is None
    assert log.at_level("ERROR")


async def test_lookup_error_does_not_abort_batch(repository: AccountRepository):
    class FlakyLookup(AccountRepository):
        async def find_conflict(self, candidate):
            if candidate.user_name == "ann":
                raise ConnectionError("connection reset")
            return await super().find_conflict(candidate)

    log = MemoryLogger()
    processor = BatchProcessor(FlakyLookup(repository.db), log, MemoryMetrics())
    result = await processor.process([JO, ANN, BO])
    assert [a.user_name for a in result.successful] == ["jo1", "bo"]
    assert result.failed[0].candidate == ANN
    assert result.failed[0].reason == "connection reset"
    assert result.failed[0].conflicting_field is None
    assert log.at_level("ERROR")[0].ctx["error_type"] == "ConnectionError"


async def test_metrics_recorded(repository: AccountRepository):
    metrics = MemoryMetrics()
    await _processor(repository, metrics).process([JO, JO_DUP])
    assert metrics.counters["accounts_created_total"] == 1
    assert metrics.counters["rows_failed_total"] == 1
    assert len(metrics.histograms["batch_duration_seconds"]) == 1


async def test_empty_batch_returns_empty_result(repository: AccountRepository):
    result = await _processor(repository).process([])
    assert result.successful == [] and result.failed == []

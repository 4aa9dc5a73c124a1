"""Row-by-row reconciliation of parsed candidates against persisted accounts."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from ingest_platform.pipeline.account_repository import AccountRepository
from ingest_platform.pipeline.errors import ConflictError, PipelineError
from ingest_platform.pipeline.records import CandidateAccount, PersistedAccount
from ingest_platform.services.logger.interface import LoggingInterface
from ingest_platform.services.metrics.interface import MetricsInterface

ALREADY_EXISTS = "already exists"


@dataclass(frozen=True)
class FailedRow:
    candidate: CandidateAccount
    reason: str
    conflicting_field: str | None = None


@dataclass
class BatchResult:
    successful: list[PersistedAccount] = field(default_factory=list)
    failed: list[FailedRow] = field(default_factory=list)


class BatchProcessor:
    """Persist a batch sequentially; one row's failure never aborts the rest.

    Rows are handled in order with no parallelism, so a duplicate inside the
    same batch is caught by ``find_conflict`` against the row persisted just
    before it.
    """

    def __init__(
        self,
        repository: AccountRepository,
        log: LoggingInterface,
        metrics: MetricsInterface,
    ) -> None:
        self.repository = repository
        self.log = log
        self.metrics = metrics

    async def process(self, rows: list[CandidateAccount]) -> BatchResult:
        result = BatchResult()
        started = time.monotonic()

        for candidate in rows:
            try:
                existing = await self.repository.find_conflict(candidate)
                if existing is not None:
                    conflicting = self.repository.get_existing_field(existing, candidate)
                    result.failed.append(FailedRow(candidate, ALREADY_EXISTS, conflicting))
                    continue
                account = await self.repository.create(candidate)
            except ConflictError as exc:
                result.failed.append(FailedRow(candidate, str(exc), exc.field))
            except PipelineError as exc:
                result.failed.append(FailedRow(candidate, str(exc)))
            except Exception as exc:
                # Storage errors in the lookup or the insert are row failures too
                self.log.error(
                    "Unexpected error persisting row",
                    user_name=candidate.user_name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                result.failed.append(FailedRow(candidate, str(exc)))
            else:
                result.successful.append(account)

        self.metrics.counter("accounts_created_total", value=float(len(result.successful)))
        if result.failed:
            self.metrics.counter("rows_failed_total", value=float(len(result.failed)))
        self.metrics.histogram("batch_duration_seconds", time.monotonic() - started)
        return result

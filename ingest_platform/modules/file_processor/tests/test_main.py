"""Tests for the File Processor worker.

All tests use MemoryQueue + MemoryDatabase + MemoryFileSystem (no external services).
"""

from __future__ import annotations

import asyncio
import json
from io import BytesIO
from typing import Any

import pytest
from openpyxl import Workbook

from ingest_platform.config.context import ModuleConfig
from ingest_platform.modules.file_processor.main import FileProcessorModule
from ingest_platform.pipeline.topics import FILE_PROCESSING_NOTIFICATIONS, FILE_UPLOADS
from ingest_platform.services.database.memory_database import MemoryDatabase
from ingest_platform.services.filesystem.memory_filesystem import MemoryFileSystem
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.factory import LoggerFactory
from ingest_platform.services.message_queue.interface import DeliveryError
from ingest_platform.services.message_queue.memory_queue import MemoryQueue
from ingest_platform.services.metrics.memory_metrics import MemoryMetrics


# ── Helpers ───────────────────────────────────────────────────────────────────

HEADER = ["Name", "User Name", "Email", "IP", "MAC", "Account Number"]
JO = ["Jo", "jo1", "jo@x.com", "10.0.0.1", "AA:BB:CC:DD:EE:FF", "ACC1"]
JO_DUP = ["Jo", "jo1", "jo2@x.com", "10.0.0.2", "AA:BB:CC:DD:EE:00", "ACC2"]
ANN = ["Ann", "ann", "ann@x.com", "10.0.0.3", "AA:BB:CC:DD:EE:01", "ACC3"]
BO = ["Bo", "bo", "bo@x.com", "10.0.0.4", "AA:BB:CC:DD:EE:02", "ACC4"]


def _xlsx(*rows: list) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(HEADER)
    for row in rows:
        ws.append(row)
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _upload(file_name: str = "users.xlsx", **overrides: Any) -> dict:
    event = {
        "fileId": "f-1",
        "fileName": file_name,
        "filePath": f"/uploads/{file_name}",
        "fileSize": 1024,
        "mimeType": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "uploadedBy": "u-1",
        "uploadedAt": "2026-01-15T10:00:00Z",
    }
    event.update(overrides)
    return event


class FailingPublishQueue(MemoryQueue):
    def __init__(self, fail_for: set[str]) -> None:
        super().__init__()
        self.fail_for = fail_for

    def publish(self, topic: str, message: Any, key: str | None = None) -> None:
        if isinstance(message, dict) and message.get("name") in self.fail_for:
            raise DeliveryError("broker unavailable")
        super().publish(topic, message, key)


class Harness:
    def __init__(self, mq: MemoryQueue | None = None) -> None:
        self.db = MemoryDatabase()
        self.fs = MemoryFileSystem()
        self.mq = mq or MemoryQueue()
        self.lifecycle = LifecycleManager()
        self.metrics = MemoryMetrics()
        self.logger = LoggerFactory(default_impl="memory")
        self.module = FileProcessorModule(
            config=ModuleConfig({"migrate": True}),
            logger=self.logger,
            db=self.db,
            fs=self.fs,
            mq=self.mq,
            lifecycle=self.lifecycle,
            metrics=self.metrics,
        )

    @property
    def log(self):
        return self.logger.create()

    async def start(self) -> "Harness":
        await self.module.initialize()
        await self.module.validate()
        return self

    def notifications(self) -> list[dict]:
        return [m for t, m, _ in self.mq.published if t == FILE_PROCESSING_NOTIFICATIONS]

    async def count(self) -> int:
        return await self.module.repository.count()


@pytest.fixture
async def harness() -> Harness:
    return await Harness().start()


# ── Tests ─────────────────────────────────────────────────────────────────────


async def test_initialize_connects_migrates_and_subscribes(harness: Harness):
    assert harness.db.is_connected()
    assert harness.mq.connected
    assert FILE_UPLOADS in harness.mq.subscriptions


async def test_happy_path_creates_accounts_and_notifies(harness: Harness):
    harness.fs.write("/uploads/users.xlsx", _xlsx(JO, ANN))
    await harness.module.handle_message(json.dumps(_upload()).encode())

    assert await harness.count() == 2
    notes = harness.notifications()
    assert [n["type"] for n in notes] == ["account_created", "account_created"]
    assert [n["email"] for n in notes] == ["jo@x.com", "ann@x.com"]
    keys = [k for t, _, k in harness.mq.published]
    accounts = await harness.module.repository.list_all()
    assert set(keys) == {a.id for a in accounts}
    assert harness.metrics.counters["notifications_published_total"] == 2


async def test_duplicate_user_name_in_sheet(harness: Harness):
    harness.fs.write("/uploads/users.xlsx", _xlsx(JO, JO_DUP))
    await harness.module.handle_message(_upload())

    assert await harness.count() == 1
    assert len(harness.notifications()) == 1
    failed = [e for e in harness.log.at_level("ERROR") if e.msg == "Failed to process record"]
    assert failed[0].ctx["conflicting_field"] == "user_name"
    assert failed[0].ctx["reason"] == "already exists"


async def test_non_excel_file_is_skipped_without_reading(harness: Harness):
    await harness.module.handle_message(_upload("a.txt", mimeType="text/plain"))

    assert harness.fs.reads == []
    assert harness.notifications() == []
    assert "Not an Excel file, skipping" in harness.log.messages
    assert harness.metrics.series["uploads_skipped_total{reason=not_excel}"] == 1


@pytest.mark.parametrize("raw", [b"", b"{not json", json.dumps({"fileName": "x.xlsx"}).encode()])
async def test_malformed_events_are_skipped(harness: Harness, raw: bytes):
    await harness.module.handle_message(raw)
    assert harness.notifications() == []
    assert harness.log.at_level("WARN")[-1].msg == "Rejected malformed upload event"


async def test_missing_file_emits_processing_error(harness: Harness):
    await harness.module.handle_message(_upload())

    notes = harness.notifications()
    assert len(notes) == 1
    assert notes[0]["type"] == "processing_error"
    assert notes[0]["userId"] == "f-1"
    assert notes[0]["name"] == "users.xlsx"
    assert "File not found" in notes[0]["error"]
    assert harness.metrics.series["uploads_failed_total{reason=FileUnavailableError}"] == 1


async def test_unreadable_workbook_emits_processing_error(harness: Harness):
    harness.fs.write("/uploads/users.xlsx", b"garbage")
    await harness.module.handle_message(_upload())
    notes = harness.notifications()
    assert [n["type"] for n in notes] == ["processing_error"]


async def test_sheet_without_valid_rows_is_empty_batch(harness: Harness):
    harness.fs.write("/uploads/users.xlsx", _xlsx(["Jo", "jo1", "jo@x.com", "10.0.0.1", "AABBCCDDEEFF", "A"]))
    await harness.module.handle_message(_upload())

    assert await harness.count() == 0
    notes = harness.notifications()
    assert [n["type"] for n in notes] == ["processing_error"]
    assert notes[0]["error"] == "No valid accounts found in Excel file"
    skipped = [e for e in harness.log.at_level("WARN") if e.msg == "Row skipped"]
    assert skipped[0].ctx["row"] == 2
    assert skipped[0].ctx["reason"] == "invalid data"


async def test_reprocessing_same_upload_is_idempotent(harness: Harness):
    harness.fs.write("/uploads/users.xlsx", _xlsx(JO, ANN, BO))
    await harness.module.handle_message(_upload())
    await harness.module.handle_message(_upload())

    assert await harness.count() == 3
    types = [n["type"] for n in harness.notifications()]
    assert types == ["account_created"] * 3 + ["processing_error"]


async def test_partial_failure_second_row_collides(harness: Harness):
    harness.fs.write("/uploads/first.xlsx", _xlsx(["Old", "old", "ann@x.com", "10.0.0.9", "AA:BB:CC:DD:EE:99", "OLD"]))
    await harness.module.handle_message(_upload("first.xlsx", fileId="f-0"))
    harness.mq.published.clear()

    harness.fs.write("/uploads/users.xlsx", _xlsx(JO, ANN, BO))
    await harness.module.handle_message(_upload())

    assert [n["name"] for n in harness.notifications()] == ["Jo", "Bo"]
    failed = [e for e in harness.log.at_level("ERROR") if e.msg == "Failed to process record"]
    assert [e.ctx["conflicting_field"] for e in failed] == ["email"]


async def test_publish_failure_does_not_undo_or_stop():
    harness = await Harness(mq=FailingPublishQueue(fail_for={"Jo"})).start()
    harness.fs.write("/uploads/users.xlsx", _xlsx(JO, ANN))
    await harness.module.handle_message(_upload())

    assert await harness.count() == 2
    assert [n["name"] for n in harness.notifications()] == ["Ann"]
    assert harness.metrics.counters["notifications_failed_total"] == 1
    assert "Notification publish failed" in harness.log.messages


async def test_lookup_failure_still_notifies_created_accounts(harness: Harness):
    real_find = harness.module.repository.find_conflict

    async def flaky_find(candidate):
        if candidate.user_name == "ann":
            raise ConnectionError("connection reset")
        return await real_find(candidate)

    harness.module.repository.find_conflict = flaky_find
    harness.fs.write("/uploads/users.xlsx", _xlsx(JO, ANN, BO))
    harness.mq.publish(FILE_UPLOADS, json.dumps(_upload()).encode())

    assert await harness.module.consumer.poll_once() is True

    notes = harness.notifications()
    assert await harness.count() == 2
    assert len(notes) == await harness.count()
    assert [n["name"] for n in notes] == ["Jo", "Bo"]
    assert harness.metrics.counters.get("messages_failed_total", 0) == 0


async def test_consumer_loop_survives_bad_messages(harness: Harness):
    harness.fs.write("/uploads/users.xlsx", _xlsx(JO))
    harness.mq.publish(FILE_UPLOADS, b"")
    harness.mq.publish(FILE_UPLOADS, b"[]")
    harness.mq.publish(FILE_UPLOADS, json.dumps(_upload()).encode())

    for _ in range(3):
        assert await harness.module.consumer.poll_once() is True

    assert await harness.count() == 1


async def test_execute_exits_when_shutdown_requested(harness: Harness):
    harness.lifecycle.request_shutdown()
    assert await asyncio.wait_for(harness.module.execute(), timeout=5) == 0


async def test_shutdown_disconnects_consumer_then_db(harness: Harness):
    await harness.lifecycle.shutdown()
    assert not harness.mq.connected
    assert not harness.db.is_connected()
    assert harness.lifecycle.errors == []


async def test_validate_rejects_same_topics():
    h = Harness()
    h.module.config = ModuleConfig({"upload-topic": "t", "notification-topic": "t"})
    await h.module.initialize()
    with pytest.raises(ValueError, match="must differ"):
        await h.module.validate()

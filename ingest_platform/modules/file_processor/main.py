"""File Processor worker.

Consumes upload events, imports the referenced Excel sheet as accounts and
publishes one notification per created account.

Topics consumed:
    file-uploads                   upload events (fileId, fileName, filePath, ...)

Topics produced:
    file-processing-notifications  account_created per account, or one
                                   processing_error when the whole file fails

Per message: malformed envelopes are logged and skipped; non-Excel files are
skipped; an unreachable file, an unreadable workbook or a file that yields no
accounts fails the message with a single processing_error notification.
Nothing is re-queued.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ingest_platform.config.context import ModuleConfig
from ingest_platform.migrations.runner import MigrationRunner
from ingest_platform.modules.base import AsyncModule
from ingest_platform.pipeline.account_repository import AccountRepository
from ingest_platform.pipeline.batch_processor import BatchProcessor, BatchResult
from ingest_platform.pipeline.consumer import TopicConsumer
from ingest_platform.pipeline.errors import (
    EmptyBatchError,
    FileUnavailableError,
    PublishError,
    SpreadsheetError,
    StructuralError,
)
from ingest_platform.pipeline.events import NotificationEvent, UploadEvent, decode_upload
from ingest_platform.pipeline.excel_parser import parse_workbook
from ingest_platform.pipeline.file_types import is_excel_file
from ingest_platform.pipeline.notifications import NotificationPublisher
from ingest_platform.pipeline.topics import FILE_PROCESSING_NOTIFICATIONS, FILE_UPLOADS
from ingest_platform.services.database.interface import DatabaseInterface
from ingest_platform.services.filesystem.interface import FileSystemInterface
from ingest_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from ingest_platform.services.logger.factory import LoggerFactory
from ingest_platform.services.logger.interface import LoggingInterface
from ingest_platform.services.message_queue.interface import MessageQueueInterface
from ingest_platform.services.metrics.interface import MetricsInterface

_SERVICE = "file_processor"

# Errors that fail a whole upload and produce one processing_error notification
_FATAL_UPLOAD_ERRORS = (FileUnavailableError, SpreadsheetError, EmptyBatchError)


class FileProcessorModule(AsyncModule):
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        db: DatabaseInterface,
        fs: FileSystemInterface,
        mq: MessageQueueInterface,
        lifecycle: LifecycleManager,
        metrics: MetricsInterface,
    ) -> None:
        self.config = config
        self.logger = logger
        self.db = db
        self.fs = fs
        self.mq = mq
        self.lifecycle = lifecycle
        self.metrics = metrics

    async def initialize(self) -> None:
        self.log = self.logger.create()
        self.upload_topic: str = self.config.get("upload-topic", FILE_UPLOADS)
        self.notification_topic: str = self.config.get(
            "notification-topic", FILE_PROCESSING_NOTIFICATIONS
        )

        await self.db.connect_async()
        self.lifecycle.on_shutdown(self.db.disconnect_async)
        if self.config.get_bool("migrate"):
            applied = await MigrationRunner(self.db).up()
            self.log.info("Migrations applied", module=_SERVICE, applied=applied)

        self.repository = AccountRepository(self.db)
        self.processor = BatchProcessor(self.repository, self.log, self.metrics)
        self.publisher = NotificationPublisher(self.mq, self.notification_topic)
        self.consumer = TopicConsumer(
            self.mq, self.upload_topic, self.handle_message,
            self.lifecycle, self.log, self.metrics, name=_SERVICE,
        )
        await self.consumer.start()
        # Registered after the database so it runs first on shutdown
        self.lifecycle.on_shutdown(self.consumer.stop)
        self.log.info(
            "File processor initialized",
            module=_SERVICE,
            upload_topic=self.upload_topic,
            notification_topic=self.notification_topic,
        )

    async def validate(self) -> None:
        if not self.upload_topic or not self.notification_topic:
            raise ValueError("upload-topic and notification-topic must be non-empty")
        if self.upload_topic == self.notification_topic:
            raise ValueError("upload-topic and notification-topic must differ")

    async def execute(self) -> int:
        self.log.info("File processor running", module=_SERVICE)
        await self.consumer.run()
        return 0

    async def handle_message(self, raw: Any) -> None:
        try:
            upload = decode_upload(raw)
        except StructuralError as exc:
            self.log.warn("Rejected malformed upload event", module=_SERVICE, error=str(exc))
            self.metrics.counter("uploads_skipped_total", tags={"reason": "malformed"})
            return

        self.metrics.counter("uploads_received_total")
        self.log.info(
            "Processing upload",
            module=_SERVICE,
            file_id=upload.file_id,
            file_name=upload.file_name,
        )

        if not is_excel_file(upload.file_name, upload.mime_type):
            self.log.info(
                "Not an Excel file, skipping",
                module=_SERVICE,
                file_id=upload.file_id,
                file_name=upload.file_name,
                mime_type=upload.mime_type,
            )
            self.metrics.counter("uploads_skipped_total", tags={"reason": "not_excel"})
            return

        try:
            result = await self._import(upload)
        except _FATAL_UPLOAD_ERRORS as exc:
            self.log.error(
                "Upload processing failed",
                module=_SERVICE,
                file_id=upload.file_id,
                file_name=upload.file_name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.metrics.counter("uploads_failed_total", tags={"reason": type(exc).__name__})
            await self._notify(NotificationEvent.processing_error(upload, str(exc)))
            return

        for account in result.successful:
            await self._notify(NotificationEvent.account_created(account))

    async def _import(self, upload: UploadEvent) -> BatchResult:
        if not await asyncio.to_thread(self.fs.exists, upload.file_path):
            raise FileUnavailableError(f"File not found: {upload.file_path}")
        try:
            data = await asyncio.to_thread(self.fs.read, upload.file_path)
        except (OSError, ValueError) as exc:
            raise FileUnavailableError(f"Cannot read {upload.file_path}: {exc}") from exc

        parsed = await asyncio.to_thread(parse_workbook, data)
        for skipped in parsed.skipped:
            self.log.warn(
                "Row skipped",
                module=_SERVICE,
                file_id=upload.file_id,
                row=skipped.row_index,
                reason=skipped.reason,
            )
        if parsed.skipped:
            self.metrics.counter("rows_skipped_total", value=float(len(parsed.skipped)))

        self.log.info(
            "Extracted accounts from Excel file",
            module=_SERVICE,
            file_id=upload.file_id,
            valid=len(parsed.valid_rows),
            skipped=len(parsed.skipped),
        )
        if not parsed.valid_rows:
            raise EmptyBatchError("No valid accounts found in Excel file")

        result = await self.processor.process(parsed.valid_rows)

        for failed in result.failed:
            self.log.error(
                "Failed to process record",
                module=_SERVICE,
                file_id=upload.file_id,
                user_name=failed.candidate.user_name,
                reason=failed.reason,
                conflicting_field=failed.conflicting_field,
            )
        self.log.info(
            "Upload processed",
            module=_SERVICE,
            file_id=upload.file_id,
            successful=len(result.successful),
            failed=len(result.failed),
        )
        if not result.successful:
            raise EmptyBatchError(
                f"No accounts created: all {len(result.failed)} rows failed"
            )
        return result

    async def _notify(self, event: NotificationEvent) -> None:
        try:
            await self.publisher.publish(event)
        except PublishError as exc:
            # Persisted accounts stay; remaining notifications still go out
            self.log.error(
                "Notification publish failed",
                module=_SERVICE,
                type=event.type,
                subject_id=event.subject_id,
                error=str(exc),
            )
            self.metrics.counter("notifications_failed_total", tags={"type": event.type})
            return
        self.metrics.counter("notifications_published_total", tags={"type": event.type})


module_class = FileProcessorModule

"""Kafka topic name constants for the ingestion pipeline."""

# ── Inbound (producer: upload service) ─────────────────────────────────────────
FILE_UPLOADS = "file-uploads"

# ── Outbound (producer: file processor, consumer: email notifier) ─────────────
FILE_PROCESSING_NOTIFICATIONS = "file-processing-notifications"

"""Bus envelopes: upload events in, notification events out.

Wire payloads are JSON objects with camelCase keys. Decoding is strict: a
payload is either an ``UploadEvent`` or a ``NotificationEvent`` and anything
else raises StructuralError, which the consumer logs and skips.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

from ingest_platform.pipeline.errors import StructuralError
from ingest_platform.pipeline.records import PersistedAccount

ACCOUNT_CREATED = "account_created"
PROCESSING_ERROR = "processing_error"
NOTIFICATION_TYPES = (ACCOUNT_CREATED, PROCESSING_ERROR)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _required_str(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    raise StructuralError(f"{keys[0]} is required and must be a non-empty string")


def _optional_str(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return str(value)
    return ""


@dataclass(frozen=True)
class UploadEvent:
    file_id: str
    file_name: str
    file_path: str
    file_size: int = 0
    mime_type: str = ""
    uploaded_by: str = ""
    uploaded_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadEvent:
        raw_size = data.get("fileSize", 0)
        try:
            file_size = int(raw_size or 0)
        except (TypeError, ValueError) as exc:
            raise StructuralError(f"fileSize must be an integer, got {raw_size!r}") from exc
        return cls(
            file_id=_required_str(data, "fileId"),
            file_name=_required_str(data, "fileName"),
            file_path=_required_str(data, "filePath"),
            file_size=file_size,
            mime_type=_optional_str(data, "mimeType"),
            uploaded_by=_optional_str(data, "uploadedBy", "userId"),
            uploaded_at=_optional_str(data, "uploadedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileId": self.file_id,
            "fileName": self.file_name,
            "filePath": self.file_path,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "uploadedBy": self.uploaded_by,
            "uploadedAt": self.uploaded_at,
        }


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    subject_id: str     # account id, or the upload's fileId for processing errors
    name: str
    processed_at: str
    email: str | None = None
    error: str | None = None

    @classmethod
    def account_created(cls, account: PersistedAccount) -> NotificationEvent:
        return cls(
            type=ACCOUNT_CREATED,
            subject_id=account.id,
            name=account.name,
            email=account.email,
            processed_at=_now_iso(),
        )

    @classmethod
    def processing_error(cls, upload: UploadEvent, error: str) -> NotificationEvent:
        return cls(
            type=PROCESSING_ERROR,
            subject_id=upload.file_id,
            name=upload.file_name,
            error=error,
            processed_at=_now_iso(),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationEvent:
        event_type = data.get("type")
        if event_type not in NOTIFICATION_TYPES:
            raise StructuralError(f"Unknown notification type: {event_type!r}")
        event = cls(
            type=event_type,
            subject_id=_required_str(data, "userId", "subjectId"),
            name=_required_str(data, "name"),
            processed_at=_required_str(data, "processedAt"),
            email=data.get("email") or None,
            error=data.get("error") or None,
        )
        if event.type == ACCOUNT_CREATED and not event.email:
            raise StructuralError("email is required for account_created")
        if event.type == PROCESSING_ERROR and not event.error:
            raise StructuralError("error is required for processing_error")
        return event

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "userId": self.subject_id,
            "name": self.name,
            "processedAt": self.processed_at,
        }
        if self.email is not None:
            payload["email"] = self.email
        if self.error is not None:
            payload["error"] = self.error
        return payload


BusEvent = Union[UploadEvent, NotificationEvent]


def decode_payload(raw: bytes | str | dict[str, Any] | None) -> dict[str, Any]:
    """Turn a raw bus value into a JSON object."""
    if isinstance(raw, dict):
        return raw
    if raw is None or (isinstance(raw, (bytes, str)) and not raw.strip()):
        raise StructuralError("Empty message received")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise StructuralError(f"Message is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise StructuralError(f"Message must be a JSON object, got {type(data).__name__}")
    return data


def decode_event(raw: bytes | str | dict[str, Any] | None) -> BusEvent:
    data = decode_payload(raw)
    if "type" in data:
        return NotificationEvent.from_dict(data)
    if "fileId" in data:
        return UploadEvent.from_dict(data)
    raise StructuralError("Message is neither an upload nor a notification event")


def decode_upload(raw: bytes | str | dict[str, Any] | None) -> UploadEvent:
    event = decode_event(raw)
    if not isinstance(event, UploadEvent):
        raise StructuralError(f"Expected an upload event, got a {event.type} notification")
    return event


def decode_notification(raw: bytes | str | dict[str, Any] | None) -> NotificationEvent:
    event = decode_event(raw)
    if not isinstance(event, NotificationEvent):
        raise StructuralError(f"Expected a notification event, got upload {event.file_id}")
    return event

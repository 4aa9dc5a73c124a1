"""Admin email rendering for account notifications."""

from __future__ import annotations

from datetime import datetime

from ingest_platform.pipeline.events import NotificationEvent
from ingest_platform.services.notifier.interface import EmailMessage


def _display_time(processed_at: str) -> str:
    try:
        return datetime.fromisoformat(processed_at.replace("Z", "+00:00")).strftime(
            "%Y-%m-%d %H:%M:%S %Z"
        ).strip()
    except ValueError:
        return processed_at


def render_account_created(notification: NotificationEvent, admin: str) -> EmailMessage:
    body = "\n".join([
        "IPTV Account Successfully Created",
        f"  - User ID: {notification.subject_id}",
        f"  - Name: {notification.name}",
        f"  - Email: {notification.email or 'Not provided'}",
        f"  - Created At: {_display_time(notification.processed_at)}",
        "This is an automated notification from the File Management System.",
    ])
    return EmailMessage(
        subject=f"IPTV Account Created - Welcome {notification.name}",
        body=body,
        recipients=[admin],
    )

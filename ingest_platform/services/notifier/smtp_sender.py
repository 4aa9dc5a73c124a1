"""SMTP delivery using the standard library client in a worker thread.

Port 465 connects with implicit TLS; any other port upgrades with STARTTLS
when the server offers it. Credentials are optional.
"""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage as MimeMessage

from ingest_platform.services.notifier.interface import EmailMessage, NotificationSenderInterface
from ingest_platform.services.secrets.interface import SecretsInterface


class SmtpNotificationSender(NotificationSenderInterface):
    def __init__(self, secrets: SecretsInterface) -> None:
        self.host = secrets.get_or_default("EMAIL_SMTP_HOST", "localhost")
        self.port = secrets.get_int("EMAIL_SMTP_PORT", 587)
        self.user = secrets.get("EMAIL_SMTP_USER")
        self.password = secrets.get("EMAIL_SMTP_PASS")
        self.sender = secrets.get_or_default("EMAIL_FROM", "noreply@filemanagement.com")
        self.timeout = secrets.get_int("EMAIL_SMTP_TIMEOUT", 30)

    def build_message(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = self.sender
        mime["To"] = ", ".join(message.recipients)
        mime["Subject"] = message.subject
        mime.set_content(message.body)
        return mime

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            client: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        # The socket is open from here; the caller only owns it once we return
        try:
            if self.port != 465:
                client.ehlo()
                if client.has_extn("starttls"):
                    client.starttls()
                    client.ehlo()
            if self.user and self.password:
                client.login(self.user, self.password)
        except BaseException:
            client.close()
            raise
        return client

    def _send_blocking(self, message: EmailMessage) -> None:
        with self._connect() as client:
            client.send_message(self.build_message(message))

    async def send(self, message: EmailMessage) -> None:
        if not message.recipients:
            raise ValueError("Email has no recipients")
        await asyncio.to_thread(self._send_blocking, message)

    def _verify_blocking(self) -> bool:
        try:
            with self._connect() as client:
                return client.noop()[0] == 250
        except (smtplib.SMTPException, OSError):
            return False

    async def verify(self) -> bool:
        return await asyncio.to_thread(self._verify_blocking)

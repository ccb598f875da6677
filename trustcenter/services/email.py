# =============================================================================
# Email Service — Provider Abstraction
# =============================================================================
#
# One `send_email()` entry point, pluggable delivery behind an
# `EmailProvider` protocol:
#
#   "mailpit"  → SMTPProvider against the local Mailpit catcher (default)
#   "smtp"     → SMTPProvider with optional STARTTLS + login
#   "sendgrid" → SendGridProvider (v3 HTTP API)
#   "resend"   → ResendProvider (HTTP API)
#
# DESIGN DECISION: Validation lives in `send_email()`, not the providers.
# Recipient checks, production test-domain blocking, attachment limits and
# error redaction apply to every provider.
#
# DESIGN DECISION: SMTP uses the stdlib smtplib client in a worker thread
# (`asyncio.to_thread`); the HTTP providers use httpx.AsyncClient.
#
# ERRORS: Any delivery failure surfaces as EmailDeliveryError carrying a
# redacted message. Workflow code catches it and reports `email_sent=false`.
# =============================================================================

from __future__ import annotations

import asyncio
import base64
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import httpx

from trustcenter.config import settings
from trustcenter.errors import EmailDeliveryError, InvalidInputError
from trustcenter.logging_config import mask_email
from trustcenter.services.email_validation import (
    EmailAttachment,
    ProcessedAttachment,
    is_blocked_domain,
    process_attachments,
    sanitize_error_message,
    validate_email_address,
)

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
RESEND_SEND_URL = "https://api.resend.com/emails"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class OutgoingEmail:
    to: str
    from_address: str
    subject: str
    html: str
    attachments: list[ProcessedAttachment]


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class EmailProvider(Protocol):
    name: str

    async def send(self, message: OutgoingEmail) -> None:
        """Deliver the message or raise."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: SMTP (Mailpit / generic relay)
# ---------------------------------------------------------------------------


class SMTPProvider:
    def __init__(
        self,
        host: str,
        port: int,
        user: str = "",
        password: str = "",
        use_tls: bool = False,
        timeout: float = 10.0,
        name: str = "smtp",
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.name = name

    def _build(self, message: OutgoingEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = message.from_address
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(message.html, subtype="html")
        for att in message.attachments:
            maintype, _, subtype = att.content_type.partition("/")
            msg.add_attachment(
                att.content,
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=att.filename,
            )
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(msg)

    async def send(self, message: OutgoingEmail) -> None:
        await asyncio.to_thread(self._send_sync, self._build(message))


# ---------------------------------------------------------------------------
# Implementation 2: SendGrid
# ---------------------------------------------------------------------------


class SendGridProvider:
    name = "sendgrid"

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise EmailDeliveryError("SENDGRID_API_KEY is not configured")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _payload(self, message: OutgoingEmail) -> dict:
        payload: dict = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.from_address},
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html}],
        }
        if message.attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(att.content).decode(),
                    "filename": att.filename,
                    "type": att.content_type,
                    "disposition": "attachment",
                }
                for att in message.attachments
            ]
        return payload

    async def send(self, message: OutgoingEmail) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            response = await self._client.post(
                SENDGRID_SEND_URL, headers=headers, json=self._payload(message)
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    SENDGRID_SEND_URL, headers=headers, json=self._payload(message)
                )
        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"SendGrid rejected message: HTTP {response.status_code} {response.text}"
            )


# ---------------------------------------------------------------------------
# Implementation 3: Resend
# ---------------------------------------------------------------------------


class ResendProvider:
    name = "resend"

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _payload(self, message: OutgoingEmail) -> dict:
        payload: dict = {
            "from": message.from_address,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.attachments:
            payload["attachments"] = [
                {
                    "filename": att.filename,
                    "content": base64.b64encode(att.content).decode(),
                }
                for att in message.attachments
            ]
        return payload

    async def send(self, message: OutgoingEmail) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            response = await self._client.post(
                RESEND_SEND_URL, headers=headers, json=self._payload(message)
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_SEND_URL, headers=headers, json=self._payload(message)
                )
        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"Resend rejected message: HTTP {response.status_code} {response.text}"
            )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: EmailProvider | None = None


def get_email_provider() -> EmailProvider:
    """Lazy singleton for the configured provider."""
    global _provider
    if _provider is None:
        kind = settings.email_provider.lower()
        if kind == "sendgrid":
            _provider = SendGridProvider(
                settings.sendgrid_api_key, timeout=settings.email_timeout_seconds
            )
        elif kind == "resend":
            _provider = ResendProvider(
                settings.resend_api_key, timeout=settings.email_timeout_seconds
            )
        elif kind == "smtp":
            _provider = SMTPProvider(
                settings.smtp_host,
                settings.smtp_port,
                user=settings.smtp_user,
                password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                timeout=settings.email_timeout_seconds,
            )
        else:
            _provider = SMTPProvider(
                settings.smtp_host,
                settings.smtp_port,
                timeout=settings.email_timeout_seconds,
                name="mailpit",
            )
        logger.info("Email provider configured: %s", _provider.name)
    return _provider


def set_email_provider(provider: EmailProvider | None) -> None:
    """Swap the provider (tests, or reconfiguration at runtime)."""
    global _provider
    _provider = provider


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


async def send_email(
    to: str,
    subject: str,
    html: str,
    attachments: list[EmailAttachment] | None = None,
    from_address: str | None = None,
) -> None:
    """
    Validate and deliver one message.

    Raises:
        InvalidInputError: recipient malformed or blocked.
        EmailDeliveryError: the provider failed (message redacted).
    """
    if not validate_email_address(to):
        raise InvalidInputError("Invalid recipient email address")
    if is_blocked_domain(to, settings.is_production):
        raise InvalidInputError("Recipient domain is not allowed")

    processed, attachment_errors = process_attachments(attachments, settings.uploads_dir)
    if attachment_errors:
        logger.warning(
            "Attachment errors for %s: %s", mask_email(to), ", ".join(attachment_errors)
        )

    message = OutgoingEmail(
        to=to,
        from_address=from_address or settings.email_from,
        subject=subject,
        html=html,
        attachments=processed,
    )
    provider_name = settings.email_provider
    try:
        provider = get_email_provider()
        provider_name = provider.name
        await provider.send(message)
    except EmailDeliveryError as e:
        safe = sanitize_error_message(e.message)
        logger.error("Email via %s to %s failed: %s", provider_name, mask_email(to), safe)
        raise EmailDeliveryError(safe) from None
    except (OSError, smtplib.SMTPException, httpx.HTTPError) as e:
        safe = sanitize_error_message(str(e) or e.__class__.__name__)
        logger.error("Email via %s to %s failed: %s", provider_name, mask_email(to), safe)
        raise EmailDeliveryError(safe) from None

    logger.info("Email sent via %s to %s", provider_name, mask_email(to))

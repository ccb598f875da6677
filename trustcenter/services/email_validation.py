# =============================================================================
# Email Validation & Redaction
# =============================================================================
#
# Guards applied before any provider is called:
#   - recipient format (simplified RFC 5322 + length limits)
#   - test/example domains refused in production
#   - attachments: 20 MB per file and in total; no path traversal
#
# Provider errors often echo API keys or addresses. `sanitize_error_message`
# scrubs them before anything is logged or returned to an admin.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

BLOCKED_DOMAINS = ("example.com", "test.com", "localhost", "test.local")

MAX_ATTACHMENT_SIZE = 20 * 1024 * 1024  # 20 MB, per file and per message


def validate_email_address(email: str | None) -> bool:
    if not email or not isinstance(email, str):
        return False
    if len(email) > 254:
        return False
    if not EMAIL_REGEX.match(email):
        return False

    parts = email.split("@")
    if len(parts) != 2:
        return False
    local_part, domain = parts
    if not local_part or len(local_part) > 64:
        return False
    if not domain or len(domain) > 253:
        return False
    if ".." in email:
        return False
    return True


def is_blocked_domain(email: str, is_production: bool) -> bool:
    """Test/example domains (and their subdomains), production only."""
    if not is_production:
        return False
    domain = email.split("@")[1].lower() if "@" in email else ""
    if not domain:
        return True
    return any(domain == b or domain.endswith(f".{b}") for b in BLOCKED_DOMAINS)


_REDACTIONS = (
    (re.compile(r"re_[a-zA-Z0-9_-]+"), "[API_KEY_REDACTED]"),
    (re.compile(r"SG\.[a-zA-Z0-9_.-]+"), "[API_KEY_REDACTED]"),
    (
        re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
        "[EMAIL_REDACTED]",
    ),
    (re.compile(r"password[=:]\s*\S+", re.IGNORECASE), "password=[REDACTED]"),
    (re.compile(r"token[=:]\s*\S+", re.IGNORECASE), "token=[REDACTED]"),
)


def sanitize_error_message(message: str) -> str:
    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


@dataclass
class EmailAttachment:
    filename: str
    content: bytes | None = None
    path: str | None = None  # absolute, or relative to the uploads dir
    content_type: str = "application/octet-stream"


@dataclass
class ProcessedAttachment:
    filename: str
    content: bytes
    content_type: str


def process_attachments(
    attachments: list[EmailAttachment] | None,
    uploads_dir: str,
) -> tuple[list[ProcessedAttachment], list[str]]:
    """
    Load and size-check attachments.

    Returns (accepted, errors). Rejected attachments are left out rather than
    failing the whole message.
    """
    processed: list[ProcessedAttachment] = []
    errors: list[str] = []
    total_size = 0

    for attachment in attachments or []:
        if attachment.content is not None:
            content = attachment.content
        elif attachment.path:
            if ".." in Path(attachment.path).parts:
                errors.append(f"{attachment.filename}: Invalid path")
                continue
            full_path = Path(attachment.path)
            if not full_path.is_absolute():
                full_path = Path(uploads_dir) / full_path
            if not full_path.is_file():
                errors.append(f"{attachment.filename}: File not found")
                continue
            try:
                content = full_path.read_bytes()
            except OSError as e:
                errors.append(f"{attachment.filename}: {e.strerror or 'Read error'}")
                continue
        else:
            errors.append(f"{attachment.filename}: No content or path provided")
            continue

        size = len(content)
        if size > MAX_ATTACHMENT_SIZE:
            errors.append(
                f"{attachment.filename}: File too large ({size / 1024 / 1024:.2f}MB)"
            )
            continue
        if total_size + size > MAX_ATTACHMENT_SIZE:
            errors.append(f"{attachment.filename}: Would exceed total size limit")
            continue

        total_size += size
        processed.append(
            ProcessedAttachment(
                filename=attachment.filename,
                content=content,
                content_type=attachment.content_type,
            )
        )

    return processed, errors

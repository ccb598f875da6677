# =============================================================================
# Magic-Link Access Gateway
# =============================================================================
#
# A token grants read access to exactly the documents of its request while:
#   - the token exists                                  (else 404)
#   - magic_link_expires_at >= now                      (else 403 expired)
#   - status in {approved, auto_approved}               (else 403)
# Nothing else is consulted: `access_expires_at` is business metadata for
# admins, not a gate.
#
# The 404 message is deliberately generic so the endpoint cannot be used to
# probe which tokens exist.
#
# USAGE MARKER: the first successful resolution stamps magic_link_used_at;
# later resolutions leave it alone. Tokens are reusable until expiry.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.config import settings
from trustcenter.db.models import (
    AccessLevel,
    Document,
    DocumentRequest,
    DocumentStatus,
    RequestStatus,
)
from trustcenter.errors import ForbiddenError, NotFoundError
from trustcenter.services.access_requests import load_documents
from trustcenter.services.magic_link import is_expired
from trustcenter.services.placeholder import render_placeholder_pdf
from trustcenter.services.storage import resolve_path

logger = logging.getLogger(__name__)

GRANTING_STATUSES = (RequestStatus.APPROVED, RequestStatus.AUTO_APPROVED)


@dataclass
class FileDelivery:
    """What the route should send: a file on disk or in-memory bytes."""

    filename: str
    media_type: str
    path: Path | None = None
    content: bytes | None = None


async def _validated_request(
    session: AsyncSession, token: str, now: datetime | None = None
) -> DocumentRequest:
    result = await session.execute(
        select(DocumentRequest).where(DocumentRequest.magic_link_token == token)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Invalid or expired link")
    if is_expired(request.magic_link_expires_at, now):
        raise ForbiddenError("This link has expired")
    if request.status not in GRANTING_STATUSES:
        raise ForbiddenError("Access not approved")
    return request


async def resolve_access(
    session: AsyncSession, token: str, now: datetime | None = None
) -> tuple[DocumentRequest, list[Document]]:
    request = await _validated_request(session, token, now)
    if request.magic_link_used_at is None:
        request.magic_link_used_at = now or datetime.now(UTC)
        await session.flush()
        logger.info("Magic link for request %d used for the first time", request.id)
    documents = await load_documents(session, list(request.document_ids))
    return request, documents


def _placeholder_allowed() -> bool:
    return settings.demo_mode and not settings.is_production


def _deliver(document: Document) -> FileDelivery:
    filename = document.file_name or f"document-{document.id}.pdf"
    media_type = document.file_type or "application/pdf"

    path = resolve_path(document.file_url)
    if path is not None and path.is_file():
        return FileDelivery(filename=filename, media_type=media_type, path=path)

    if _placeholder_allowed():
        logger.info("Serving placeholder for document %d (file missing)", document.id)
        return FileDelivery(
            filename=f"{Path(filename).stem}.pdf",
            media_type="application/pdf",
            content=render_placeholder_pdf(document.title, document.description),
        )

    logger.warning("File for document %d missing: %s", document.id, document.file_url)
    raise NotFoundError("Document file not found")


async def download_document(
    session: AsyncSession,
    token: str,
    document_id: int,
    now: datetime | None = None,
) -> FileDelivery:
    request = await _validated_request(session, token, now)
    if document_id not in (request.document_ids or []):
        raise ForbiddenError("Document not included in this request")

    document = await session.get(Document, document_id)
    if document is None:
        raise NotFoundError("Document not found")
    return _deliver(document)


async def download_public_document(session: AsyncSession, document_id: int) -> FileDelivery:
    """Published public documents only; no token involved."""
    document = await session.get(Document, document_id)
    if document is None or document.status != DocumentStatus.PUBLISHED:
        raise NotFoundError("Document not found")
    if document.access_level != AccessLevel.PUBLIC:
        raise ForbiddenError("Access denied. Please use your magic link.")
    return _deliver(document)

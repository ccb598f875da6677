# =============================================================================
# Documents API — Public Catalogue and Admin Management
# =============================================================================
#
# PUBLIC:
#   GET  /api/documents                  published, current versions
#   GET  /api/documents/{id}             one published document
#   GET  /api/documents/{id}/download    public documents only
#
# ADMIN:
#   POST   /api/documents                multipart upload (new or replacement)
#   PATCH  /api/documents/{id}           metadata edit
#   DELETE /api/documents/{id}           archive + remove file
#   GET    /api/documents/{id}/versions  replacement chain
#
# VERSIONING: uploading with `replaces_document_id` archives the old row
# (is_current_version=False) and publishes the new one with
# version_number = old + 1. Approved-document sets keep pointing at the old
# id; admins re-approve the new version explicitly.
# Only the current head of a chain can be replaced; anything else is a 409.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.access import file_response
from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.config import settings
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AccessLevel, AdminUser, Document, DocumentStatus
from trustcenter.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from trustcenter.models.requests import DocumentUpdate
from trustcenter.models.responses import DocumentListResponse, DocumentResponse
from trustcenter.services.access import download_public_document
from trustcenter.services.activity import log_activity
from trustcenter.services.storage import delete_file, save_file

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/png",
    "image/jpeg",
}


async def _get_document_or_404(session: AsyncSession, document_id: int) -> Document:
    document = await session.get(Document, document_id)
    if document is None:
        raise NotFoundError("Document not found")
    return document


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List published documents",
)
async def list_documents(
    access_level: AccessLevel | None = Query(default=None),
    category: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentListResponse:
    stmt = select(Document).where(
        Document.status == DocumentStatus.PUBLISHED,
        Document.is_current_version.is_(True),
    )
    if access_level is not None:
        stmt = stmt.where(Document.access_level == access_level)
    if category:
        stmt = stmt.where(Document.category == category)
    stmt = stmt.order_by(Document.created_at.desc(), Document.id.desc())

    result = await session.execute(stmt)
    documents = list(result.scalars().all())
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in documents],
        total=len(documents),
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> DocumentResponse:
    document = await session.get(Document, document_id)
    if document is None or document.status != DocumentStatus.PUBLISHED:
        raise NotFoundError("Document not found")
    return DocumentResponse.model_validate(document)


@router.get(
    "/documents/{document_id}/download",
    summary="Download a public document",
    response_class=Response,
)
async def download_document_endpoint(
    document_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    return file_response(await download_public_document(session, document_id))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=DocumentResponse,
    status_code=201,
    summary="Upload a document",
    description=(
        "Multipart upload. Pass `replaces_document_id` to publish a new "
        "version; the replaced document is archived."
    ),
)
async def upload_document(
    request: Request,
    file: UploadFile = File(..., description="PDF, DOCX, PNG or JPG"),
    title: str = Form(..., min_length=1, max_length=500),
    access_level: AccessLevel = Form(...),
    description: str | None = Form(default=None),
    category: str | None = Form(default=None),
    version: str | None = Form(default=None),
    replaces_document_id: int | None = Form(default=None),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentResponse:
    if settings.demo_mode:
        count = await session.scalar(select(func.count(Document.id)))
        if count >= settings.demo_max_documents:
            raise ForbiddenError(
                f"Demo limit reached: at most {settings.demo_max_documents} documents",
                demoMode=True,
            )

    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidInputError(
            f"Invalid file type: {file.content_type}. Allowed types: PDF, DOCX, PNG, JPG"
        )
    content = await file.read()
    if not content:
        raise InvalidInputError("Uploaded file is empty")
    if len(content) > settings.max_upload_size_bytes:
        raise InvalidInputError("Uploaded file is too large")

    now = datetime.now(UTC)
    version_number = 1
    if replaces_document_id is not None:
        previous = await _get_document_or_404(session, replaces_document_id)
        if not previous.is_current_version:
            successor = await session.scalar(
                select(Document.id).where(Document.replaces_document_id == previous.id)
            )
            raise ConflictError(
                "Document has already been replaced by a newer version",
                replaced_by_document_id=successor,
            )
        previous.is_current_version = False
        previous.status = DocumentStatus.ARCHIVED
        previous.archived_at = now
        version_number = previous.version_number + 1

    filename = file.filename or "document"
    document = Document(
        title=title.strip(),
        description=description,
        category=category,
        access_level=access_level,
        status=DocumentStatus.PUBLISHED,
        file_url=save_file(filename, content),
        file_name=filename,
        file_size=len(content),
        file_type=file.content_type,
        version=version,
        version_number=version_number,
        is_current_version=True,
        replaces_document_id=replaces_document_id,
        uploaded_by=admin.id,
        published_at=now,
    )
    session.add(document)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "document_upload",
        "document",
        entity_id=document.id,
        entity_name=document.title,
        new_value={
            "access_level": access_level.value,
            "version_number": version_number,
            "replaces_document_id": replaces_document_id,
        },
        description=f"Uploaded document '{document.title}'",
    )
    logger.info(
        "Document %d uploaded by admin %d (v%d)", document.id, admin.id, version_number
    )
    return DocumentResponse.model_validate(document)


@router.patch("/documents/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: int,
    body: DocumentUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentResponse:
    document = await _get_document_or_404(session, document_id)
    changes = body.model_dump(exclude_unset=True)

    old_value = {}
    for key, value in changes.items():
        current = getattr(document, key)
        old_value[key] = getattr(current, "value", current)
        setattr(document, key, value)

    if changes.get("status") == DocumentStatus.ARCHIVED and document.archived_at is None:
        document.archived_at = datetime.now(UTC)
    elif changes.get("status") == DocumentStatus.PUBLISHED:
        document.archived_at = None
        document.published_at = document.published_at or datetime.now(UTC)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "document_update",
        "document",
        entity_id=document.id,
        entity_name=document.title,
        old_value=old_value,
        new_value=body.model_dump(mode="json", exclude_unset=True),
        description=f"Updated document '{document.title}'",
    )
    return DocumentResponse.model_validate(document)


@router.delete("/documents/{document_id}", summary="Archive a document")
async def archive_document(
    document_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> dict:
    document = await _get_document_or_404(session, document_id)
    if delete_file(document.file_url):
        logger.info("Deleted file for document %d", document.id)

    old_status = document.status.value
    document.status = DocumentStatus.ARCHIVED
    document.archived_at = datetime.now(UTC)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "document_archive",
        "document",
        entity_id=document.id,
        entity_name=document.title,
        old_value={"status": old_status},
        new_value={"status": DocumentStatus.ARCHIVED.value},
        description=f"Archived document '{document.title}'",
    )
    return {"message": "Document archived successfully"}


@router.get(
    "/documents/{document_id}/versions",
    response_model=DocumentListResponse,
    summary="Version history, newest first",
)
async def document_versions(
    document_id: int,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentListResponse:
    document = await _get_document_or_404(session, document_id)

    chain: list[Document] = [document]
    seen = {document.id}

    # Walk back through what this version replaced
    cursor = document
    while cursor.replaces_document_id is not None and cursor.replaces_document_id not in seen:
        cursor = await session.get(Document, cursor.replaces_document_id)
        if cursor is None:
            break
        chain.append(cursor)
        seen.add(cursor.id)

    # ...and forward through anything that replaced it
    cursor = document
    while True:
        result = await session.execute(
            select(Document).where(Document.replaces_document_id == cursor.id)
        )
        successor = result.scalars().first()
        if successor is None or successor.id in seen:
            break
        chain.append(successor)
        seen.add(successor.id)
        cursor = successor

    chain.sort(key=lambda d: d.version_number, reverse=True)
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in chain],
        total=len(chain),
    )

# =============================================================================
# Response Builders — ORM rows → response models
# =============================================================================
#
# Request listings carry document titles and an organization summary. Both
# are fetched in one query each for the whole page, not per row.
# =============================================================================

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.db.models import Document, DocumentRequest, Organization
from trustcenter.models.responses import (
    DocumentRequestResponse,
    DocumentSummary,
    OrganizationSummary,
)


def request_response(
    request: DocumentRequest,
    documents_by_id: dict[int, Document] | None = None,
    org: Organization | None = None,
) -> DocumentRequestResponse:
    documents_by_id = documents_by_id or {}
    return DocumentRequestResponse(
        id=request.id,
        requester_name=request.requester_name,
        requester_email=request.requester_email,
        requester_company=request.requester_company,
        request_reason=request.request_reason,
        organization_id=request.organization_id,
        document_ids=list(request.document_ids or []),
        status=request.status.value,
        auto_approved=request.auto_approved,
        magic_link_expires_at=request.magic_link_expires_at,
        magic_link_used_at=request.magic_link_used_at,
        access_expires_at=request.access_expires_at,
        expiration_days=request.expiration_days,
        reviewed_by=request.reviewed_by,
        reviewed_at=request.reviewed_at,
        admin_notes=request.admin_notes,
        created_at=request.created_at,
        updated_at=request.updated_at,
        documents=[
            DocumentSummary(id=d.id, title=d.title)
            for i in request.document_ids or []
            if (d := documents_by_id.get(i)) is not None
        ],
        organization=(
            OrganizationSummary(
                id=org.id,
                name=org.name,
                email_domain=org.email_domain,
                status=org.status.value if org.status else None,
            )
            if org is not None
            else None
        ),
    )


async def request_responses(
    session: AsyncSession, requests: list[DocumentRequest]
) -> list[DocumentRequestResponse]:
    """Serialize a page of requests with batched document/org lookups."""
    doc_ids = {i for r in requests for i in (r.document_ids or [])}
    org_ids = {r.organization_id for r in requests if r.organization_id is not None}

    documents: dict[int, Document] = {}
    if doc_ids:
        result = await session.execute(select(Document).where(Document.id.in_(doc_ids)))
        documents = {d.id: d for d in result.scalars().all()}

    orgs: dict[int, Organization] = {}
    if org_ids:
        result = await session.execute(select(Organization).where(Organization.id.in_(org_ids)))
        orgs = {o.id: o for o in result.scalars().all()}

    return [
        request_response(r, documents, orgs.get(r.organization_id) if r.organization_id else None)
        for r in requests
    ]

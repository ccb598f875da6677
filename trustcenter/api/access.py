# =============================================================================
# Magic-Link Access API
# =============================================================================
#
# GET /api/access/{token}                          → request + document list
# GET /api/access/{token}/download/{document_id}   → file stream
#
# The token is the only credential. See services/access.py for the rules.
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.db.engine import get_async_session
from trustcenter.models.responses import (
    AccessDocumentResponse,
    AccessRequestInfo,
    AccessResponse,
)
from trustcenter.services.access import FileDelivery, download_document, resolve_access

router = APIRouter(tags=["Access"])


def file_response(delivery: FileDelivery) -> Response:
    """Stream from disk when there is a file, else send the rendered bytes."""
    if delivery.path is not None:
        return FileResponse(
            delivery.path,
            media_type=delivery.media_type,
            filename=delivery.filename,
        )
    return Response(
        content=delivery.content,
        media_type=delivery.media_type,
        headers={"Content-Disposition": f'attachment; filename="{delivery.filename}"'},
    )


@router.get(
    "/access/{token}",
    response_model=AccessResponse,
    summary="Resolve a magic link",
)
async def get_access(
    token: str,
    session: AsyncSession = Depends(get_async_session),
) -> AccessResponse:
    request, documents = await resolve_access(session, token)
    return AccessResponse(
        request=AccessRequestInfo(
            id=request.id,
            requester_name=request.requester_name,
            requester_company=request.requester_company,
            magic_link_expires_at=request.magic_link_expires_at,
            documents=[AccessDocumentResponse.model_validate(d) for d in documents],
        )
    )


@router.get(
    "/access/{token}/download/{document_id}",
    summary="Download one document through a magic link",
    response_class=Response,
)
async def download_with_token(
    token: str,
    document_id: int,
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    delivery = await download_document(session, token, document_id)
    return file_response(delivery)

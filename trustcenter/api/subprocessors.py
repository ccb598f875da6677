# =============================================================================
# Subprocessors API — Public List, Change Subscriptions, Admin Edits
# =============================================================================
#
# PUBLIC:
#   GET  /api/subprocessors[?include_inactive=true]
#   POST /api/subprocessors/subscribe    {"email": ...}  201 new, 200 known
#
# ADMIN:
#   POST / PATCH / DELETE /api/subprocessors[/{id}]
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, client_ip, get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser, Subprocessor
from trustcenter.models.requests import (
    SubprocessorCreate,
    SubprocessorUpdate,
    SubscribeRequest,
)
from trustcenter.models.responses import (
    MessageResponse,
    SubprocessorListResponse,
    SubprocessorResponse,
)
from trustcenter.services import content
from trustcenter.services.activity import log_activity
from trustcenter.services.rate_limiter import check_public_form_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subprocessors", tags=["Subprocessors"])


@router.get("", response_model=SubprocessorListResponse)
async def list_subprocessors(
    include_inactive: bool = Query(default=False),
    session: AsyncSession = Depends(get_async_session),
) -> SubprocessorListResponse:
    rows = await content.list_subprocessors(session, include_inactive)
    return SubprocessorListResponse(
        subprocessors=[SubprocessorResponse.model_validate(s) for s in rows],
        total=len(rows),
    )


@router.post("/subscribe", response_model=MessageResponse, status_code=201)
async def subscribe(
    body: SubscribeRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    await check_public_form_rate_limit("subscribe", client_ip(request))
    created = await content.subscribe_to_subprocessor_updates(session, body.email)
    if not created:
        response.status_code = 200
        return MessageResponse(message="Already subscribed")
    return MessageResponse(message="Subscribed successfully")


@router.post("", response_model=SubprocessorResponse, status_code=201)
async def create_subprocessor(
    body: SubprocessorCreate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SubprocessorResponse:
    sub = Subprocessor(**body.model_dump())
    session.add(sub)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "create",
        "subprocessor",
        entity_id=sub.id,
        entity_name=sub.name,
        new_value={"name": sub.name, "purpose": sub.purpose},
        description=f"Added subprocessor: {sub.name}",
    )
    logger.info("Subprocessor %d added: %s", sub.id, sub.name)
    return SubprocessorResponse.model_validate(sub)


@router.patch("/{subprocessor_id}", response_model=SubprocessorResponse)
async def update_subprocessor(
    subprocessor_id: int,
    body: SubprocessorUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SubprocessorResponse:
    sub = await content.get_or_404(session, Subprocessor, subprocessor_id, "Subprocessor")
    previous = content.apply_changes(sub, body.model_dump(exclude_unset=True))
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "update",
        "subprocessor",
        entity_id=sub.id,
        entity_name=sub.name,
        old_value=previous,
        new_value=body.model_dump(mode="json", exclude_unset=True),
        description=f"Updated subprocessor: {sub.name}",
    )
    return SubprocessorResponse.model_validate(sub)


@router.delete("/{subprocessor_id}", response_model=MessageResponse)
async def delete_subprocessor(
    subprocessor_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    sub = await content.get_or_404(session, Subprocessor, subprocessor_id, "Subprocessor")
    snapshot = {"name": sub.name, "purpose": sub.purpose}
    await session.delete(sub)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "delete",
        "subprocessor",
        entity_id=subprocessor_id,
        entity_name=snapshot["name"],
        old_value=snapshot,
        description=f"Removed subprocessor: {snapshot['name']}",
    )
    return MessageResponse(message="Subprocessor deleted successfully")

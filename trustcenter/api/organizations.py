# =============================================================================
# Organizations API — Admin Read/Edit
# =============================================================================
#
# Status transitions (tier change, soft delete, restore) live in
# api/admin.py under /admin/organizations; this router covers listing and
# plain edits (display name, approved document set).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser, Organization, OrganizationStatus
from trustcenter.errors import NotFoundError
from trustcenter.models.requests import OrganizationUpdate
from trustcenter.models.responses import OrganizationListResponse, OrganizationResponse
from trustcenter.services.activity import log_activity
from trustcenter.services.organizations import merge_document_ids

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Organizations"])


async def get_organization_or_404(session: AsyncSession, org_id: int) -> Organization:
    org = await session.get(Organization, org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


@router.get("/organizations", response_model=OrganizationListResponse)
async def list_organizations(
    status: OrganizationStatus | None = Query(default=None),
    include_inactive: bool = Query(default=True),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationListResponse:
    stmt = select(Organization)
    if status is not None:
        stmt = stmt.where(Organization.status == status)
    if not include_inactive:
        stmt = stmt.where(Organization.is_active.is_(True))
    stmt = stmt.order_by(Organization.name)

    result = await session.execute(stmt)
    orgs = list(result.scalars().all())
    return OrganizationListResponse(
        organizations=[OrganizationResponse.model_validate(o) for o in orgs],
        total=len(orgs),
    )


@router.get("/organizations/{org_id}", response_model=OrganizationResponse)
async def get_organization(
    org_id: int,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationResponse:
    return OrganizationResponse.model_validate(await get_organization_or_404(session, org_id))


@router.patch("/organizations/{org_id}", response_model=OrganizationResponse)
async def update_organization(
    org_id: int,
    body: OrganizationUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationResponse:
    org = await get_organization_or_404(session, org_id)
    old_value = {"name": org.name, "approved_document_ids": list(org.approved_document_ids or [])}

    if body.name is not None:
        org.name = body.name.strip()
    if body.approved_document_ids is not None:
        # Explicit replacement of the set, duplicates dropped
        org.approved_document_ids = merge_document_ids([], body.approved_document_ids)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "organization_update",
        "organization",
        entity_id=org.id,
        entity_name=org.name,
        old_value=old_value,
        new_value={"name": org.name, "approved_document_ids": org.approved_document_ids},
        description=f"Updated organization {org.name}",
    )
    return OrganizationResponse.model_validate(org)

# =============================================================================
# Admin API — Review Queue, Organization Status, Activity Log, Admin Users
# =============================================================================
#
# Every endpoint requires an active admin (Depends(get_current_admin)).
#
# DESIGN DECISION: Review endpoints are thin. The workflow service owns
# validation, the state transition, the commit, email and activity logging;
# this layer adds only the HTTP shape and the webhook background task.
#
# DESIGN DECISION: Admin users are never hard-deleted. DELETE deactivates
# (is_active=False); activity log rows keep their author. An admin cannot
# deactivate themselves.
#
# DESIGN DECISION: The raw admin token is only returned ONCE at creation.
# After that, only token_prefix is visible.
# =============================================================================

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.api.organizations import get_organization_or_404
from trustcenter.api.serializers import request_response, request_responses
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import (
    AdminUser,
    Document,
    DocumentRequest,
    DocumentStatus,
    Organization,
    OrganizationStatus,
    RequestStatus,
)
from trustcenter.errors import ConflictError, ForbiddenError, NotFoundError
from trustcenter.models.requests import (
    ApproveRequestBody,
    BatchApproveBody,
    BatchDenyBody,
    CreateAdminUserRequest,
    DenyRequestBody,
    OrganizationStatusUpdate,
    UpdateAdminUserRequest,
)
from trustcenter.models.responses import (
    ActivityLogListResponse,
    ActivityLogResponse,
    ActivityStatsResponse,
    AdminStatsResponse,
    AdminUserCreatedResponse,
    AdminUserListResponse,
    AdminUserResponse,
    BatchItemResponse,
    BatchResponse,
    DocumentRequestDetailResponse,
    DocumentRequestListResponse,
    OrganizationResponse,
    ReviewResponse,
)
from trustcenter.services import access_requests, organizations, webhooks
from trustcenter.services.activity import activity_stats, list_activity_logs, log_activity
from trustcenter.services.auth import generate_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def _schedule_events(
    background_tasks: BackgroundTasks, event_type: str, requests: list[DocumentRequest]
) -> None:
    for r in requests:
        background_tasks.add_task(
            webhooks.dispatch_event, event_type, webhooks.request_event_data(r)
        )


# ---------------------------------------------------------------------------
# GET /admin/stats: dashboard counters
# ---------------------------------------------------------------------------


@router.get("/stats", response_model=AdminStatsResponse)
async def admin_stats(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> AdminStatsResponse:
    request_counts = dict(
        (await session.execute(
            select(DocumentRequest.status, func.count()).group_by(DocumentRequest.status)
        )).all()
    )
    org_counts = dict(
        (await session.execute(
            select(Organization.status, func.count()).group_by(Organization.status)
        )).all()
    )
    total_documents = await session.scalar(select(func.count(Document.id)))
    published_documents = await session.scalar(
        select(func.count(Document.id)).where(Document.status == DocumentStatus.PUBLISHED)
    )

    return AdminStatsResponse(
        total_documents=total_documents or 0,
        published_documents=published_documents or 0,
        total_requests=sum(request_counts.values()),
        pending_requests=request_counts.get(RequestStatus.PENDING, 0),
        approved_requests=request_counts.get(RequestStatus.APPROVED, 0),
        auto_approved_requests=request_counts.get(RequestStatus.AUTO_APPROVED, 0),
        denied_requests=request_counts.get(RequestStatus.DENIED, 0),
        total_organizations=sum(org_counts.values()),
        whitelisted_organizations=org_counts.get(OrganizationStatus.WHITELISTED, 0),
        revoked_organizations=org_counts.get(OrganizationStatus.NO_ACCESS, 0),
    )


# ---------------------------------------------------------------------------
# Document request review
# ---------------------------------------------------------------------------


@router.get("/document-requests", response_model=DocumentRequestListResponse)
async def list_document_requests(
    status: RequestStatus | None = Query(default=None),
    organization_id: int | None = Query(default=None),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentRequestListResponse:
    requests = await access_requests.list_requests(session, status, organization_id)
    return DocumentRequestListResponse(
        requests=await request_responses(session, requests),
        total=len(requests),
    )


@router.get("/document-requests/{request_id}", response_model=DocumentRequestDetailResponse)
async def get_document_request(
    request_id: int,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentRequestDetailResponse:
    detail = await access_requests.get_request_detail(session, request_id)
    base = request_response(
        detail.request, {d.id: d for d in detail.documents}, detail.organization
    )
    return DocumentRequestDetailResponse(
        **base.model_dump(),
        history=await request_responses(session, detail.history),
    )


@router.patch(
    "/document-requests/{request_id}/approve",
    response_model=ReviewResponse,
    summary="Approve a pending request",
    description=(
        "Mints a magic link (7-day expiry), adds the documents to the "
        "organization's approved set and emails the requester. Email "
        "failure does not undo the approval; see `email_sent`."
    ),
)
async def approve_document_request(
    request_id: int,
    body: ApproveRequestBody,
    request: Request,
    background_tasks: BackgroundTasks,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ReviewResponse:
    result = await access_requests.approve_request(
        session,
        request_id,
        actor_from_request(request, admin),
        admin_notes=body.admin_notes,
        expiration_days=body.expiration_days,
    )
    _schedule_events(background_tasks, webhooks.REQUEST_APPROVED, [result.request])
    responses = await request_responses(session, [result.request])
    return ReviewResponse(
        request=responses[0],
        email_sent=result.email_sent,
        email_error=result.email_error,
        magic_link_token=result.request.magic_link_token,
    )


@router.patch("/document-requests/{request_id}/deny", response_model=ReviewResponse)
async def deny_document_request(
    request_id: int,
    body: DenyRequestBody,
    request: Request,
    background_tasks: BackgroundTasks,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ReviewResponse:
    result = await access_requests.deny_request(
        session,
        request_id,
        actor_from_request(request, admin),
        reason=body.reason,
        admin_notes=body.admin_notes,
    )
    _schedule_events(background_tasks, webhooks.REQUEST_DENIED, [result.request])
    responses = await request_responses(session, [result.request])
    return ReviewResponse(
        request=responses[0],
        email_sent=result.email_sent,
        email_error=result.email_error,
    )


@router.post("/document-requests/batch-approve", response_model=BatchResponse)
async def batch_approve_requests(
    body: BatchApproveBody,
    request: Request,
    background_tasks: BackgroundTasks,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> BatchResponse:
    results, approved = await access_requests.batch_approve(
        session, body.request_ids, actor_from_request(request, admin), body.admin_notes
    )
    _schedule_events(background_tasks, webhooks.REQUEST_APPROVED, approved)
    return BatchResponse(
        processed=len(approved),
        skipped=len(results) - len(approved),
        results=[BatchItemResponse(**vars(r)) for r in results],
    )


@router.post("/document-requests/batch-deny", response_model=BatchResponse)
async def batch_deny_requests(
    body: BatchDenyBody,
    request: Request,
    background_tasks: BackgroundTasks,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> BatchResponse:
    results, denied = await access_requests.batch_deny(
        session,
        body.request_ids,
        actor_from_request(request, admin),
        reason=body.reason,
        admin_notes=body.admin_notes,
    )
    _schedule_events(background_tasks, webhooks.REQUEST_DENIED, denied)
    return BatchResponse(
        processed=len(denied),
        skipped=len(results) - len(denied),
        results=[BatchItemResponse(**vars(r)) for r in results],
    )


# ---------------------------------------------------------------------------
# Organization status
# ---------------------------------------------------------------------------


def _org_state(org: Organization) -> dict:
    return {"status": org.status.value if org.status else None, "is_active": org.is_active}


async def _transition_org(
    session: AsyncSession,
    request: Request,
    admin: AdminUser,
    org: Organization,
    before: dict,
    action_type: str,
    description: str,
) -> OrganizationResponse:
    await session.flush()
    await log_activity(
        session,
        actor_from_request(request, admin),
        action_type,
        "organization",
        entity_id=org.id,
        entity_name=org.name,
        old_value=before,
        new_value=_org_state(org),
        description=description,
    )
    logger.info("Organization %d: %s by admin %d", org.id, action_type, admin.id)
    return OrganizationResponse.model_validate(org)


@router.patch("/organizations/{org_id}/status", response_model=OrganizationResponse)
async def set_organization_status(
    org_id: int,
    body: OrganizationStatusUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationResponse:
    org = await get_organization_or_404(session, org_id)
    before = _org_state(org)
    organizations.apply_status(org, body.status)
    return await _transition_org(
        session, request, admin, org, before, "status_change",
        f"Set {org.name} to {body.status.value}",
    )


@router.delete("/organizations/{org_id}", response_model=OrganizationResponse)
async def delete_organization(
    org_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationResponse:
    """Soft delete: access revoked, row and history kept."""
    org = await get_organization_or_404(session, org_id)
    before = _org_state(org)
    organizations.archive(org)
    return await _transition_org(
        session, request, admin, org, before, "organization_revoked", f"Revoked {org.name}"
    )


@router.patch("/organizations/{org_id}/restore", response_model=OrganizationResponse)
async def restore_organization(
    org_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationResponse:
    org = await get_organization_or_404(session, org_id)
    before = _org_state(org)
    organizations.restore(org)
    return await _transition_org(
        session, request, admin, org, before, "organization_restored", f"Restored {org.name}"
    )


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


@router.get("/activity-logs", response_model=ActivityLogListResponse)
async def get_activity_logs(
    date_: date | None = Query(default=None, alias="date"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    action_type: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=1000),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ActivityLogListResponse:
    logs = await list_activity_logs(
        session,
        on_date=date_,
        start_date=start_date,
        end_date=end_date,
        entity_type=entity_type,
        action_type=action_type,
        limit=limit,
    )
    return ActivityLogListResponse(
        logs=[ActivityLogResponse.model_validate(entry) for entry in logs],
        total=len(logs),
    )


@router.get("/activity-logs/stats", response_model=ActivityStatsResponse)
async def get_activity_stats(
    days: int = Query(default=7, ge=1, le=365),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ActivityStatsResponse:
    return ActivityStatsResponse(**await activity_stats(session, days))


# ---------------------------------------------------------------------------
# Admin users
# ---------------------------------------------------------------------------


async def _get_admin_or_404(session: AsyncSession, user_id: int) -> AdminUser:
    user = await session.get(AdminUser, user_id)
    if user is None:
        raise NotFoundError("Admin user not found")
    return user


@router.get("/users", response_model=AdminUserListResponse)
async def list_admin_users(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> AdminUserListResponse:
    result = await session.execute(select(AdminUser).order_by(AdminUser.created_at.desc()))
    users = list(result.scalars().all())
    return AdminUserListResponse(
        users=[AdminUserResponse.model_validate(u) for u in users],
        total=len(users),
    )


@router.post("/users", response_model=AdminUserCreatedResponse, status_code=201)
async def create_admin_user(
    body: CreateAdminUserRequest,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> AdminUserCreatedResponse:
    email = body.email.strip().lower()
    existing = await session.scalar(select(AdminUser.id).where(AdminUser.email == email))
    if existing is not None:
        raise ConflictError("An admin with this email already exists")

    raw_token, token_prefix, token_hash = generate_admin_token()
    user = AdminUser(
        email=email,
        full_name=body.full_name,
        role=body.role,
        token_prefix=token_prefix,
        token_hash=token_hash,
        is_active=True,
    )
    session.add(user)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "admin_user_created",
        "admin_user",
        entity_id=user.id,
        entity_name=user.email,
        new_value={"role": user.role},
        description=f"Created admin {user.email}",
    )
    logger.info("Admin user created: id=%d prefix=%s", user.id, token_prefix)
    return AdminUserCreatedResponse(
        **AdminUserResponse.model_validate(user).model_dump(), token=raw_token
    )


@router.patch("/users/{user_id}", response_model=AdminUserResponse)
async def update_admin_user(
    user_id: int,
    body: UpdateAdminUserRequest,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> AdminUserResponse:
    user = await _get_admin_or_404(session, user_id)
    if body.is_active is False and user.id == admin.id:
        raise ForbiddenError("You cannot deactivate your own account")

    changes = body.model_dump(exclude_unset=True)
    old_value = {key: getattr(user, key) for key in changes}
    for key, value in changes.items():
        setattr(user, key, value)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "admin_user_updated",
        "admin_user",
        entity_id=user.id,
        entity_name=user.email,
        old_value=old_value,
        new_value=changes,
        description=f"Updated admin {user.email}",
    )
    return AdminUserResponse.model_validate(user)


@router.delete("/users/{user_id}", response_model=AdminUserResponse)
async def deactivate_admin_user(
    user_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> AdminUserResponse:
    user = await _get_admin_or_404(session, user_id)
    if user.id == admin.id:
        raise ForbiddenError("You cannot deactivate your own account")

    user.is_active = False
    await session.flush()
    await log_activity(
        session,
        actor_from_request(request, admin),
        "admin_user_deactivated",
        "admin_user",
        entity_id=user.id,
        entity_name=user.email,
        old_value={"is_active": True},
        new_value={"is_active": False},
        description=f"Deactivated admin {user.email}",
    )
    return AdminUserResponse.model_validate(user)

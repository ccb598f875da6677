# =============================================================================
# Document Requests API — Public Submission
# =============================================================================
#
# POST /api/document-requests is the only unauthenticated write in the
# system. It is rate limited per IP and per email before anything touches
# the database.
#
# `request.created` webhooks are dispatched as background tasks after the
# response is sent, with their own session.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import client_ip, get_current_admin
from trustcenter.api.serializers import request_responses
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser
from trustcenter.models.requests import DocumentRequestCreate
from trustcenter.models.responses import DocumentRequestListResponse, SubmissionResponse
from trustcenter.services import access_requests, webhooks
from trustcenter.services.rate_limiter import check_submission_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Document Requests"])


@router.post(
    "/document-requests",
    response_model=SubmissionResponse,
    status_code=201,
    summary="Request access to documents",
    description=(
        "Submit a request for one or more documents. Documents your "
        "organization already holds are granted immediately and a magic "
        "link is emailed; the rest wait for admin review."
    ),
)
async def submit_document_request(
    body: DocumentRequestCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_async_session),
) -> SubmissionResponse:
    await check_submission_rate_limit(client_ip(request), body.email)

    result = await access_requests.submit_request(
        session,
        name=body.name,
        email=body.email,
        company=body.company,
        document_ids=body.document_ids,
        reason=body.reason,
    )

    for created in result.created:
        background_tasks.add_task(
            webhooks.dispatch_event,
            webhooks.REQUEST_CREATED,
            webhooks.request_event_data(created),
        )

    return SubmissionResponse(
        auto_approved=result.auto_approved,
        message=result.message,
        email_sent=result.email_sent,
    )


@router.get(
    "/document-requests/history/{email}",
    response_model=DocumentRequestListResponse,
    summary="All requests made from one email address",
)
async def request_history(
    email: str,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentRequestListResponse:
    requests = await access_requests.requests_for_email(session, email.strip())
    return DocumentRequestListResponse(
        requests=await request_responses(session, requests),
        total=len(requests),
    )

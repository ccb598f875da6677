# =============================================================================
# Contact & Tickets API
# =============================================================================
#
# PUBLIC:
#   POST /api/contact                      open a ticket
#   POST /api/webhooks/inbound-email       mail provider inbound parse
#                                          (multipart form: from, subject,
#                                          text, html); always 200 once the
#                                          required fields are present
#
# ADMIN:
#   GET   /api/admin/tickets[?status=]
#   GET   /api/admin/tickets/{id}          with the message thread
#   POST  /api/admin/tickets/{id}/messages reply (stored, then emailed)
#   PATCH /api/admin/tickets/{id}/status
#   PATCH /api/admin/tickets/{id}/priority
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, client_ip, get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser, TicketStatus
from trustcenter.errors import InvalidInputError
from trustcenter.models.requests import (
    ContactFormRequest,
    TicketPriorityUpdate,
    TicketReplyRequest,
    TicketStatusUpdate,
)
from trustcenter.models.responses import (
    InboundEmailResponse,
    MessageResponse,
    TicketDetailResponse,
    TicketListResponse,
    TicketMessageResponse,
    TicketReplyResponse,
    TicketResponse,
)
from trustcenter.services import tickets
from trustcenter.services.activity import log_activity
from trustcenter.services.rate_limiter import check_public_form_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Contact"])


@router.post("/contact", response_model=MessageResponse, status_code=201)
async def submit_contact_form(
    body: ContactFormRequest,
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    await check_public_form_rate_limit("contact", client_ip(request))
    await tickets.submit_contact_form(
        session,
        name=body.name,
        email=body.email,
        subject=body.subject,
        message=body.message,
        organization=body.organization,
    )
    return MessageResponse(message="Contact form submitted successfully")


@router.post("/webhooks/inbound-email", response_model=InboundEmailResponse)
async def inbound_email(
    sender: str | None = Form(default=None, alias="from"),
    subject: str | None = Form(default=None),
    text: str | None = Form(default=None),
    html: str | None = Form(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> InboundEmailResponse:
    """
    Thread a requester's emailed reply onto its ticket.

    Anything after the field check answers 200, including failures, so the
    provider does not redeliver.
    """
    if not sender or not subject:
        raise InvalidInputError("Missing required fields")

    try:
        async with session.begin_nested():
            outcome = await tickets.record_inbound_reply(
                session, sender=sender, subject=subject, text=text, html_body=html
            )
    except SQLAlchemyError:
        logger.exception("Inbound email could not be stored")
        return InboundEmailResponse(error="Internal error, logged")

    if outcome.message is None:
        return InboundEmailResponse(message=outcome.note, ticket_id=outcome.ticket_id)
    return InboundEmailResponse(
        success=True,
        message=outcome.note,
        ticket_id=outcome.ticket_id,
        message_id=outcome.message.id,
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/admin/tickets", response_model=TicketListResponse)
async def list_tickets(
    status: TicketStatus | None = Query(default=None),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> TicketListResponse:
    rows = await tickets.list_tickets(session, status)
    return TicketListResponse(
        tickets=[TicketResponse.model_validate(t) for t in rows], total=len(rows)
    )


@router.get("/admin/tickets/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(
    ticket_id: str,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> TicketDetailResponse:
    ticket = await tickets.get_ticket(session, ticket_id, with_messages=True)
    return TicketDetailResponse.model_validate(ticket)


@router.post(
    "/admin/tickets/{ticket_id}/messages",
    response_model=TicketReplyResponse,
    status_code=201,
)
async def reply_to_ticket(
    ticket_id: str,
    body: TicketReplyRequest,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> TicketReplyResponse:
    result = await tickets.reply_to_ticket(session, ticket_id, admin, body.message)
    await log_activity(
        session,
        actor_from_request(request, admin),
        "ticket_reply",
        "ticket",
        entity_id=result.message.ticket_id,
        new_value={"email_sent": result.email_sent},
        description="Replied to contact ticket",
    )
    return TicketReplyResponse(
        message=TicketMessageResponse.model_validate(result.message),
        email_sent=result.email_sent,
        email_error=result.email_error,
    )


@router.patch("/admin/tickets/{ticket_id}/status", response_model=TicketResponse)
async def update_ticket_status(
    ticket_id: str,
    body: TicketStatusUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> TicketResponse:
    ticket = await tickets.get_ticket(session, ticket_id)
    old = ticket.status.value
    ticket.status = body.status
    await session.flush()
    await log_activity(
        session,
        actor_from_request(request, admin),
        "ticket_status",
        "ticket",
        entity_id=ticket.id,
        entity_name=ticket.subject,
        old_value={"status": old},
        new_value={"status": body.status.value},
        description=f"Ticket status {old} -> {body.status.value}",
    )
    return TicketResponse.model_validate(ticket)


@router.patch("/admin/tickets/{ticket_id}/priority", response_model=TicketResponse)
async def update_ticket_priority(
    ticket_id: str,
    body: TicketPriorityUpdate,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> TicketResponse:
    ticket = await tickets.get_ticket(session, ticket_id)
    ticket.priority = body.priority
    await session.flush()
    return TicketResponse.model_validate(ticket)

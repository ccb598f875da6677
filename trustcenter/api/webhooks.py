# =============================================================================
# Outbound Webhooks API — Admin Registration
# =============================================================================
#
# The signing secret is generated server-side and returned once at creation.
# Receivers verify X-TrustCenter-Signature = hex(HMAC-SHA256(secret, body)).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser, OutboundWebhook
from trustcenter.errors import InvalidInputError, NotFoundError
from trustcenter.models.requests import CreateWebhookRequest
from trustcenter.models.responses import (
    SuccessResponse,
    WebhookCreatedResponse,
    WebhookListResponse,
    WebhookResponse,
    WebhookTestResponse,
)
from trustcenter.services import webhooks
from trustcenter.services.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/webhooks", tags=["Webhooks"])


async def _get_webhook_or_404(session: AsyncSession, webhook_id: int) -> OutboundWebhook:
    webhook = await session.get(OutboundWebhook, webhook_id)
    if webhook is None:
        raise NotFoundError("Webhook not found")
    return webhook


@router.get("", response_model=WebhookListResponse)
async def list_webhooks(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> WebhookListResponse:
    result = await session.execute(
        select(OutboundWebhook).order_by(OutboundWebhook.created_at.desc())
    )
    hooks = list(result.scalars().all())
    return WebhookListResponse(
        webhooks=[WebhookResponse.model_validate(w) for w in hooks],
        total=len(hooks),
    )


@router.post("", response_model=WebhookCreatedResponse, status_code=201)
async def create_webhook(
    body: CreateWebhookRequest,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> WebhookCreatedResponse:
    if not body.url.startswith(("https://", "http://")):
        raise InvalidInputError("Webhook URL must start with http:// or https://")
    unsupported = [e for e in body.event_types if e not in webhooks.SUPPORTED_EVENTS]
    if unsupported:
        raise InvalidInputError(
            f"Unsupported event types: {', '.join(unsupported)}",
            supported=list(webhooks.SUPPORTED_EVENTS),
        )

    webhook = OutboundWebhook(
        url=body.url,
        description=body.description,
        event_types=list(dict.fromkeys(body.event_types)),
        secret=webhooks.generate_secret(),
        is_active=True,
        created_by=admin.id,
    )
    session.add(webhook)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "webhook_created",
        "webhook",
        entity_id=webhook.id,
        entity_name=webhook.url,
        new_value={"event_types": webhook.event_types},
        description=f"Registered webhook {webhook.url}",
    )
    logger.info("Webhook %d registered for %s", webhook.id, webhook.event_types)
    return WebhookCreatedResponse(
        **WebhookResponse.model_validate(webhook).model_dump(), secret=webhook.secret
    )


@router.delete("/{webhook_id}", response_model=SuccessResponse)
async def delete_webhook(
    webhook_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    webhook = await _get_webhook_or_404(session, webhook_id)
    url = webhook.url
    await session.delete(webhook)
    await session.flush()

    await log_activity(
        session,
        actor_from_request(request, admin),
        "webhook_deleted",
        "webhook",
        entity_id=webhook_id,
        entity_name=url,
        description=f"Removed webhook {url}",
    )
    return SuccessResponse()


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse)
async def test_webhook(
    webhook_id: int,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> WebhookTestResponse:
    webhook = await _get_webhook_or_404(session, webhook_id)
    result = await webhooks.send_test_ping(webhook)
    return WebhookTestResponse(
        success=result.ok, status_code=result.status_code, error=result.error
    )

# =============================================================================
# Outbound Webhooks — Signed Event Fan-Out
# =============================================================================
#
# Events: request.created, request.approved, request.denied (plus "ping"
# from the admin test endpoint).
#
# WIRE FORMAT:
#   POST <webhook.url>
#   Content-Type: application/json
#   X-TrustCenter-Event: <event type>
#   X-TrustCenter-Signature: hex(HMAC-SHA256(secret, raw body))
#   User-Agent: TrustCenter-Webhook/1.0
#   body: {"event": ..., "timestamp": ..., "data": {...}}
#
# DESIGN DECISION: Deliveries run concurrently and every outcome is awaited
# (asyncio.gather with return_exceptions=True); one failing subscriber
# does not affect the others. No retries, no ordering guarantee.
#
# Routes schedule `dispatch_event` as a FastAPI background task, after the
# response; it opens its own session.
# =============================================================================

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trustcenter.config import settings
from trustcenter.db.models import OutboundWebhook

logger = logging.getLogger(__name__)

USER_AGENT = "TrustCenter-Webhook/1.0"
EVENT_HEADER = "X-TrustCenter-Event"
SIGNATURE_HEADER = "X-TrustCenter-Signature"

REQUEST_CREATED = "request.created"
REQUEST_APPROVED = "request.approved"
REQUEST_DENIED = "request.denied"
SUPPORTED_EVENTS = (REQUEST_CREATED, REQUEST_APPROVED, REQUEST_DENIED)


@dataclass
class DeliveryResult:
    webhook_id: int
    ok: bool
    status_code: int | None = None
    error: str | None = None


def generate_secret() -> str:
    return secrets.token_hex(32)


def encode_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), default=str).encode()


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def build_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "event": event_type,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": data,
    }


async def deliver(
    client: httpx.AsyncClient,
    webhook: OutboundWebhook,
    event_type: str,
    payload: dict[str, Any],
) -> DeliveryResult:
    body = encode_payload(payload)
    headers = {
        "Content-Type": "application/json",
        EVENT_HEADER: event_type,
        SIGNATURE_HEADER: sign_payload(webhook.secret, body),
        "User-Agent": USER_AGENT,
    }
    response = await client.post(webhook.url, content=body, headers=headers)
    if response.is_error:
        logger.warning(
            "Webhook %d (%s) returned HTTP %d", webhook.id, event_type, response.status_code
        )
    return DeliveryResult(
        webhook_id=webhook.id,
        ok=not response.is_error,
        status_code=response.status_code,
    )


async def subscribers_for(session: AsyncSession, event_type: str) -> list[OutboundWebhook]:
    result = await session.execute(
        select(OutboundWebhook).where(OutboundWebhook.is_active.is_(True))
    )
    # event_types is a JSON list; filter here to stay dialect-neutral
    return [w for w in result.scalars().all() if event_type in (w.event_types or [])]


async def dispatch_event(
    event_type: str,
    data: dict[str, Any],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[DeliveryResult]:
    """Deliver one event to every active subscriber and wait for all."""
    if session_factory is None:
        from trustcenter.db.engine import async_session_factory as session_factory

    async with session_factory() as session:
        webhooks = await subscribers_for(session, event_type)
    if not webhooks:
        return []

    logger.info("Dispatching %s to %d webhook(s)", event_type, len(webhooks))
    payload = build_event(event_type, data)

    async def _fan_out(http: httpx.AsyncClient) -> list[DeliveryResult]:
        outcomes = await asyncio.gather(
            *(deliver(http, w, event_type, payload) for w in webhooks),
            return_exceptions=True,
        )
        results: list[DeliveryResult] = []
        for webhook, outcome in zip(webhooks, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Webhook %d (%s) error: %s", webhook.id, event_type, outcome)
                results.append(
                    DeliveryResult(webhook_id=webhook.id, ok=False, error=str(outcome))
                )
            else:
                results.append(outcome)
        return results

    if client is not None:
        return await _fan_out(client)
    async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as http:
        return await _fan_out(http)


async def send_test_ping(
    webhook: OutboundWebhook, client: httpx.AsyncClient | None = None
) -> DeliveryResult:
    """Deliver a `ping` event to one webhook, reporting transport errors."""
    payload = {"event": "ping", "timestamp": datetime.now(UTC).isoformat()}
    try:
        if client is not None:
            return await deliver(client, webhook, "ping", payload)
        async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as http:
            return await deliver(http, webhook, "ping", payload)
    except httpx.HTTPError as e:
        return DeliveryResult(webhook_id=webhook.id, ok=False, error=str(e))


def request_event_data(request: Any) -> dict[str, Any]:
    """Webhook `data` block for a DocumentRequest (no token, no notes)."""
    return {
        "id": request.id,
        "requester_name": request.requester_name,
        "requester_email": request.requester_email,
        "requester_company": request.requester_company,
        "organization_id": request.organization_id,
        "document_ids": list(request.document_ids or []),
        "status": getattr(request.status, "value", request.status),
        "auto_approved": request.auto_approved,
    }

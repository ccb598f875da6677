# =============================================================================
# Tests — Outbound Webhooks
# =============================================================================
#
# Deliveries go through httpx.MockTransport.
#
# Test groups:
#   1. Signing & payload encoding
#   2. dispatch_event fan-out (subscription filter, failure isolation)
#   3. Test ping
# =============================================================================

from __future__ import annotations

import hashlib
import hmac
import json

import httpx
import pytest

from trustcenter.db.engine import async_session_factory
from trustcenter.db.models import OutboundWebhook
from trustcenter.services.webhooks import (
    EVENT_HEADER,
    REQUEST_APPROVED,
    REQUEST_CREATED,
    SIGNATURE_HEADER,
    USER_AGENT,
    build_event,
    dispatch_event,
    encode_payload,
    send_test_ping,
    sign_payload,
)


@pytest.fixture
def make_webhook(session):
    async def _make(url: str, event_types: list[str], is_active: bool = True) -> OutboundWebhook:
        webhook = OutboundWebhook(
            url=url, event_types=event_types, secret=f"secret-{url}", is_active=is_active
        )
        session.add(webhook)
        await session.commit()
        return webhook

    return _make


# ---------------------------------------------------------------------------
# 1. Signing
# ---------------------------------------------------------------------------


class TestSigning:
    """Signature is hex HMAC-SHA256 of the exact body bytes."""

    def test_signature_matches_hmac(self):
        body = encode_payload({"event": "ping"})
        expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
        assert sign_payload("s3cret", body) == expected

    def test_body_is_compact_json(self):
        assert encode_payload({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'

    def test_event_envelope(self):
        event = build_event(REQUEST_CREATED, {"id": 1})
        assert event["event"] == "request.created"
        assert event["data"] == {"id": 1}
        assert "timestamp" in event


# ---------------------------------------------------------------------------
# 2. Fan-out
# ---------------------------------------------------------------------------


class TestDispatchEvent:
    """Every active subscriber gets the event; failures stay isolated."""

    async def test_only_active_subscribers_of_the_event(self, session, make_webhook):
        subscribed = await make_webhook("https://a.acme.io/hook", [REQUEST_CREATED])
        await make_webhook("https://b.acme.io/hook", [REQUEST_APPROVED])
        await make_webhook("https://c.acme.io/hook", [REQUEST_CREATED], is_active=False)

        received: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await dispatch_event(
                REQUEST_CREATED,
                {"id": 5},
                session_factory=async_session_factory,
                client=client,
            )

        assert [r.webhook_id for r in results] == [subscribed.id]
        assert results[0].ok is True
        [request] = received
        assert request.url == "https://a.acme.io/hook"
        assert request.headers[EVENT_HEADER] == REQUEST_CREATED
        assert request.headers["User-Agent"] == USER_AGENT
        assert request.headers[SIGNATURE_HEADER] == sign_payload(subscribed.secret, request.content)
        assert json.loads(request.content)["data"] == {"id": 5}

    async def test_failing_subscriber_does_not_affect_others(self, session, make_webhook):
        ok = await make_webhook("https://ok.acme.io/hook", [REQUEST_CREATED])
        error = await make_webhook("https://error.acme.io/hook", [REQUEST_CREATED])
        down = await make_webhook("https://down.acme.io/hook", [REQUEST_CREATED])

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.acme.io":
                raise httpx.ConnectError("connection refused", request=request)
            if request.url.host == "error.acme.io":
                return httpx.Response(500)
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await dispatch_event(
                REQUEST_CREATED, {}, session_factory=async_session_factory, client=client
            )

        by_id = {r.webhook_id: r for r in results}
        assert by_id[ok.id].ok is True
        assert by_id[error.id].ok is False
        assert by_id[error.id].status_code == 500
        assert by_id[down.id].ok is False
        assert "connection refused" in by_id[down.id].error

    async def test_no_subscribers(self, session):
        results = await dispatch_event(
            REQUEST_APPROVED, {}, session_factory=async_session_factory
        )
        assert results == []


# ---------------------------------------------------------------------------
# 3. Ping
# ---------------------------------------------------------------------------


class TestTestPing:
    """Admin-triggered ping reports status or transport error."""

    async def test_ping_success(self, session, make_webhook):
        webhook = await make_webhook("https://a.acme.io/hook", [REQUEST_CREATED])

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers[EVENT_HEADER] == "ping"
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send_test_ping(webhook, client=client)
        assert result.ok is True
        assert result.status_code == 200

    async def test_ping_transport_error(self, session, make_webhook):
        webhook = await make_webhook("https://a.acme.io/hook", [REQUEST_CREATED])

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send_test_ping(webhook, client=client)
        assert result.ok is False
        assert "timed out" in result.error

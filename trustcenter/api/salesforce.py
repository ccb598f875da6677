# =============================================================================
# Salesforce Integration API
# =============================================================================
#
# ENDPOINTS (admin unless noted):
#   GET  /salesforce/status          active connection summary
#   GET  /salesforce/connect-url     signed state + PKCE authorize URL
#   GET  /salesforce/callback        OAuth redirect target (public)
#   GET  /salesforce/config          effective config, secret masked
#   GET  /salesforce/config/secret   reveal the client secret
#   PUT  /salesforce/config          store config (secret encrypted)
#   GET  /salesforce/metadata        Account field candidates
#   POST /salesforce/sync            run the organization sync now
#   POST /salesforce/disconnect      deactivate the connection
#
# The callback never returns JSON: the browser is redirected to the admin
# integrations page with ?salesforce=connected|error[&message=...].
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.config import settings
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser
from trustcenter.errors import TrustCenterError
from trustcenter.models.requests import SalesforceConfigUpdate
from trustcenter.models.responses import (
    ConnectUrlResponse,
    SalesforceConfigResponse,
    SalesforceSecretResponse,
    SalesforceStatusResponse,
    SalesforceSyncResponse,
    SuccessResponse,
)
from trustcenter.services import salesforce
from trustcenter.services.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/salesforce", tags=["Salesforce"])


def _integrations_redirect(status: str, message: str | None = None) -> RedirectResponse:
    params = {"salesforce": status}
    if message:
        params["message"] = message[:200]
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}/admin/integrations?{urlencode(params)}",
        status_code=302,
    )


@router.get("/status", response_model=SalesforceStatusResponse)
async def salesforce_status(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SalesforceStatusResponse:
    return SalesforceStatusResponse(**await salesforce.connection_status(session))


@router.get("/connect-url", response_model=ConnectUrlResponse)
async def connect_url(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ConnectUrlResponse:
    config = await salesforce.load_config(session)
    state = salesforce.generate_oauth_state(admin.id)
    challenge, _ = salesforce.pkce_store.create_challenge(state)
    return ConnectUrlResponse(
        authorize_url=salesforce.authorize_url(config, state, challenge),
        state=state,
    )


@router.get("/callback", include_in_schema=False)
async def oauth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> RedirectResponse:
    if not code or not state:
        return _integrations_redirect("error", "Missing code or state")

    admin_id = salesforce.validate_oauth_state(state)
    if admin_id is None:
        return _integrations_redirect("error", "Invalid or expired OAuth state")

    verifier = salesforce.pkce_store.consume(state)
    try:
        await salesforce.exchange_code_and_store(session, code, admin_id, verifier)
    except TrustCenterError as e:
        logger.warning("Salesforce OAuth callback failed: %s", e.message)
        await session.rollback()
        return _integrations_redirect("error", e.message)
    except httpx.HTTPError as e:
        logger.warning("Salesforce OAuth callback transport error: %s", e)
        await session.rollback()
        return _integrations_redirect("error", "Salesforce connection failed")

    return _integrations_redirect("connected")


@router.get("/config", response_model=SalesforceConfigResponse)
async def get_config(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SalesforceConfigResponse:
    return SalesforceConfigResponse(**await salesforce.admin_config_view(session))


@router.get("/config/secret", response_model=SalesforceSecretResponse)
async def get_config_secret(
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SalesforceSecretResponse:
    revealed = await salesforce.reveal_client_secret(session)
    await log_activity(
        session,
        actor_from_request(request, admin),
        "secret_revealed",
        "integration",
        entity_name="salesforce",
        description="Viewed Salesforce client secret",
    )
    return SalesforceSecretResponse(**revealed)


@router.put("/config", response_model=SalesforceConfigResponse)
async def put_config(
    body: SalesforceConfigUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SalesforceConfigResponse:
    saved = await salesforce.save_config(session, body.model_dump(), admin.id)
    await log_activity(
        session,
        actor_from_request(request, admin),
        "config_update",
        "integration",
        entity_name="salesforce",
        new_value={k: v for k, v in saved.items() if k != "updated_at"},
        description="Updated Salesforce integration settings",
    )
    return SalesforceConfigResponse(**saved)


@router.get("/metadata")
async def get_metadata(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> dict[str, Any]:
    return await salesforce.account_field_metadata(session)


@router.post("/sync", response_model=SalesforceSyncResponse)
async def run_sync(
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SalesforceSyncResponse:
    summary = await salesforce.sync_organizations(session)
    await log_activity(
        session,
        actor_from_request(request, admin),
        "salesforce_sync",
        "integration",
        entity_name="salesforce",
        new_value=summary,
        description=(
            f"Salesforce sync: {summary['updated_organizations']} organization(s) "
            f"updated, {summary['blocked_organizations']} blocked"
        ),
    )
    return SalesforceSyncResponse(**summary)


@router.post("/disconnect", response_model=SuccessResponse)
async def disconnect(
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    await salesforce.disconnect(session)
    await log_activity(
        session,
        actor_from_request(request, admin),
        "disconnect",
        "integration",
        entity_name="salesforce",
        description="Disconnected Salesforce",
    )
    return SuccessResponse()

# =============================================================================
# Auth Dependencies — FastAPI Dependency Injection for Admin Authentication
# =============================================================================
#
# 1. get_current_admin(): extract & validate the Bearer admin token
# 2. actor_from_request(): who/where for activity log entries
#
# DESIGN DECISION: FastAPI dependency (not middleware) for auth.
# - Each admin endpoint opts in via Depends(get_current_admin)
# - The resolved AdminUser is available in route handlers
#
# Tokens are looked up by SHA-256 hash; the raw token is never stored.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser
from trustcenter.services.activity import Actor
from trustcenter.services.auth import hash_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs (shows "Authorize" button in Swagger UI)
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    session: AsyncSession = Depends(get_async_session),
) -> AdminUser:
    """
    Resolve the calling admin from `Authorization: Bearer <token>`.

    Raises:
        HTTPException 401: missing or unknown token
        HTTPException 403: admin account deactivated
    """
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing admin token. Provide 'Authorization: Bearer <token>' header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await session.execute(
        select(AdminUser).where(AdminUser.token_hash == hash_token(credentials.credentials))
    )
    admin = result.scalar_one_or_none()

    if admin is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid admin token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not admin.is_active:
        raise HTTPException(status_code=403, detail="Admin account has been deactivated.")

    admin.last_login_at = datetime.now(UTC)
    request.state.admin = admin
    return admin


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def actor_from_request(request: Request, admin: AdminUser) -> Actor:
    return Actor(
        admin_id=admin.id,
        email=admin.email,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

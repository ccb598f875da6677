# =============================================================================
# Auth API — Admin Bootstrap and Identity
# =============================================================================
#
# POST /auth/signup creates the FIRST admin only and returns its raw bearer
# token once. With any admin present it is refused; further admins are
# created by an existing admin via POST /admin/users. Demo deployments
# block signup entirely (see api/demo.py).
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser
from trustcenter.errors import ForbiddenError, InvalidInputError
from trustcenter.models.requests import SignupRequest
from trustcenter.models.responses import AdminUserCreatedResponse, AdminUserResponse
from trustcenter.services.auth import generate_admin_token
from trustcenter.services.email_validation import validate_email_address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/signup",
    response_model=AdminUserCreatedResponse,
    status_code=201,
    summary="Create the first admin",
)
async def signup(
    body: SignupRequest,
    session: AsyncSession = Depends(get_async_session),
) -> AdminUserCreatedResponse:
    existing = await session.scalar(select(func.count(AdminUser.id)))
    if existing:
        raise ForbiddenError("Signup is closed. Ask an existing admin for access.")

    email = body.email.strip().lower()
    if not validate_email_address(email):
        raise InvalidInputError("Invalid email address")

    raw_token, token_prefix, token_hash = generate_admin_token()
    admin = AdminUser(
        email=email,
        full_name=body.full_name,
        role="admin",
        token_prefix=token_prefix,
        token_hash=token_hash,
        is_active=True,
    )
    session.add(admin)
    await session.flush()

    logger.info("First admin created: id=%d prefix=%s", admin.id, token_prefix)
    return AdminUserCreatedResponse(
        **AdminUserResponse.model_validate(admin).model_dump(), token=raw_token
    )


@router.get("/me", response_model=AdminUserResponse)
async def me(admin: AdminUser = Depends(get_current_admin)) -> AdminUserResponse:
    return AdminUserResponse.model_validate(admin)

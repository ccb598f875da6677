# =============================================================================
# Trust-Center Content — Public Catalogue Queries & Admin Edits
# =============================================================================
#
# The public site shows certifications, security controls, security updates,
# subprocessors and branding settings. Admins edit them through plain CRUD.
#
# VISIBILITY RULES (public listings):
#   certifications    status == active
#   security updates  published_at set and not in the future
#   subprocessors     is_active, unless include_inactive is asked for
#   controls          always (grouped by category)
#
# Settings are a single row. Until an admin saves one, the public endpoint
# serves SETTINGS_DEFAULTS.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trustcenter.db.models import (
    Base,
    Certification,
    CertificationStatus,
    Control,
    ControlCategory,
    DocumentCategory,
    SecurityUpdate,
    Subprocessor,
    SubprocessorSubscription,
    TrustCenterSettings,
)
from trustcenter.errors import InvalidInputError, NotFoundError
from trustcenter.logging_config import mask_email

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

SETTINGS_DEFAULTS: dict[str, Any] = {
    "company_name": "Trust Center",
    "hero_title": "Security & Compliance",
    "hero_subtitle": "Your trusted partner for security and compliance documentation",
    "primary_color": "#007bff",
    "secondary_color": "#6c757d",
    "logo_url": None,
    "contact_email": None,
    "support_email": None,
    "social_links": {},
    "updated_at": None,
}


async def get_or_404(
    session: AsyncSession, model: type[ModelT], entity_id: Any, label: str
) -> ModelT:
    entity = await session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(f"{label} not found")
    return entity


def apply_changes(entity: Base, changes: dict[str, Any]) -> dict[str, Any]:
    """
    Assign `changes` onto `entity` and return the previous values.

    Enum values in the returned dict are unwrapped so it can go straight
    into an activity-log JSON column.
    """
    previous = {}
    for key, value in changes.items():
        current = getattr(entity, key)
        previous[key] = _plain(current)
        setattr(entity, key, value)
    return previous


def _plain(value: Any) -> Any:
    value = getattr(value, "value", value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# Public listings
# ---------------------------------------------------------------------------


async def list_certifications(
    session: AsyncSession, include_inactive: bool = False
) -> list[Certification]:
    stmt = select(Certification).order_by(Certification.display_order, Certification.id)
    if not include_inactive:
        stmt = stmt.where(Certification.status == CertificationStatus.ACTIVE)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_document_categories(session: AsyncSession) -> list[DocumentCategory]:
    result = await session.execute(
        select(DocumentCategory).order_by(DocumentCategory.display_order, DocumentCategory.id)
    )
    return list(result.scalars().all())


async def list_control_categories(session: AsyncSession) -> list[ControlCategory]:
    result = await session.execute(
        select(ControlCategory).order_by(ControlCategory.sort_order, ControlCategory.id)
    )
    return list(result.scalars().all())


async def list_controls(
    session: AsyncSession, category_id: int | None = None
) -> list[Control]:
    stmt = (
        select(Control)
        .options(selectinload(Control.category))
        .order_by(Control.sort_order, Control.id)
    )
    if category_id is not None:
        stmt = stmt.where(Control.category_id == category_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_security_updates(
    session: AsyncSession,
    include_unpublished: bool = False,
    now: datetime | None = None,
) -> list[SecurityUpdate]:
    """Newest first. Drafts and scheduled updates only with include_unpublished."""
    stmt = select(SecurityUpdate).order_by(
        SecurityUpdate.published_at.desc(), SecurityUpdate.id.desc()
    )
    if not include_unpublished:
        now = now or datetime.now(UTC)
        stmt = stmt.where(
            SecurityUpdate.published_at.is_not(None),
            SecurityUpdate.published_at <= now,
        )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_subprocessors(
    session: AsyncSession, include_inactive: bool = False
) -> list[Subprocessor]:
    stmt = select(Subprocessor).order_by(Subprocessor.display_order, Subprocessor.id)
    if not include_inactive:
        stmt = stmt.where(Subprocessor.is_active.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def ensure_control_category(session: AsyncSession, category_id: int) -> None:
    if await session.get(ControlCategory, category_id) is None:
        raise InvalidInputError("Control category does not exist", category_id=category_id)


# ---------------------------------------------------------------------------
# Subprocessor change notifications
# ---------------------------------------------------------------------------


async def subscribe_to_subprocessor_updates(
    session: AsyncSession, email: str | None
) -> bool:
    """
    Record `email` for subprocessor change notices.

    Returns:
        True when a new subscription was created, False if it already existed.

    Raises:
        InvalidInputError: missing or malformed address.
    """
    if not email or "@" not in email:
        raise InvalidInputError("Valid email is required")
    email = email.strip().lower()

    existing = await session.scalar(
        select(SubprocessorSubscription).where(SubprocessorSubscription.email == email)
    )
    if existing is not None:
        return False

    try:
        async with session.begin_nested():
            session.add(SubprocessorSubscription(email=email))
            await session.flush()
    except IntegrityError:
        # Concurrent subscribe of the same address
        return False

    logger.info("Subprocessor update subscription added for %s", mask_email(email))
    return True


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


async def get_settings_row(session: AsyncSession) -> TrustCenterSettings | None:
    return await session.scalar(
        select(TrustCenterSettings).order_by(TrustCenterSettings.id).limit(1)
    )


async def public_settings(session: AsyncSession) -> dict[str, Any]:
    """Stored settings, or the defaults when none have been saved."""
    row = await get_settings_row(session)
    if row is None:
        return dict(SETTINGS_DEFAULTS)
    return {key: getattr(row, key) for key in SETTINGS_DEFAULTS}


async def save_settings(
    session: AsyncSession, changes: dict[str, Any]
) -> tuple[TrustCenterSettings, dict[str, Any]]:
    """Upsert the single settings row. Returns it with the previous values."""
    row = await get_settings_row(session)
    if row is None:
        seed = {k: v for k, v in SETTINGS_DEFAULTS.items() if k != "updated_at"}
        row = TrustCenterSettings(**seed)
        session.add(row)
    previous = apply_changes(row, changes)
    await session.flush()
    return row, previous

# =============================================================================
# Trust-Center Content API — Certifications, Categories, Controls, Updates
# =============================================================================
#
# PUBLIC:
#   GET /api/certifications              active, by display_order
#   GET /api/document-categories         by display_order
#   GET /api/control-categories          by sort_order
#   GET /api/controls?category_id=       with their category
#   GET /api/security-updates            published, newest first
#   GET /api/settings                    branding (defaults until saved)
#
# ADMIN (Bearer token): POST / PATCH / DELETE on each collection above,
# GET /api/certifications/all and /api/security-updates/all (drafts and
# inactive rows included), and PUT /api/settings. Every write is recorded
# in the activity log as create / update / delete.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import (
    AdminUser,
    Certification,
    Control,
    ControlCategory,
    DocumentCategory,
    SecurityUpdate,
)
from trustcenter.errors import ConflictError
from trustcenter.models.requests import (
    CertificationCreate,
    CertificationUpdate,
    ControlCategoryCreate,
    ControlCategoryUpdate,
    ControlCreate,
    ControlUpdate,
    DocumentCategoryCreate,
    DocumentCategoryUpdate,
    SecurityUpdateCreate,
    SecurityUpdateUpdate,
    SettingsUpdate,
)
from trustcenter.models.responses import (
    CertificationListResponse,
    CertificationResponse,
    ControlCategoryListResponse,
    ControlCategoryResponse,
    ControlListResponse,
    ControlResponse,
    DocumentCategoryListResponse,
    DocumentCategoryResponse,
    MessageResponse,
    SecurityUpdateListResponse,
    SecurityUpdateResponse,
    SettingsResponse,
)
from trustcenter.services import content
from trustcenter.services.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Trust Center Content"])


async def _record(
    session: AsyncSession,
    request: Request,
    admin: AdminUser,
    action: str,
    entity_type: str,
    entity_id: Any,
    entity_name: str | None,
    *,
    old_value: dict | None = None,
    new_value: dict | None = None,
) -> None:
    label = entity_type.replace("_", " ")
    verb = {"create": "Added", "update": "Updated", "delete": "Deleted"}[action]
    await log_activity(
        session,
        actor_from_request(request, admin),
        action,
        entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        old_value=old_value,
        new_value=new_value,
        description=f"{verb} {label}: {entity_name}",
    )


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------


@router.get("/certifications", response_model=CertificationListResponse)
async def list_certifications(
    session: AsyncSession = Depends(get_async_session),
) -> CertificationListResponse:
    rows = await content.list_certifications(session)
    return CertificationListResponse(
        certifications=[CertificationResponse.model_validate(c) for c in rows],
        total=len(rows),
    )


@router.get("/certifications/all", response_model=CertificationListResponse)
async def list_all_certifications(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> CertificationListResponse:
    rows = await content.list_certifications(session, include_inactive=True)
    return CertificationListResponse(
        certifications=[CertificationResponse.model_validate(c) for c in rows],
        total=len(rows),
    )


@router.post("/certifications", response_model=CertificationResponse, status_code=201)
async def create_certification(
    body: CertificationCreate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> CertificationResponse:
    cert = Certification(**body.model_dump())
    session.add(cert)
    await session.flush()
    await _record(
        session, request, admin, "create", "certification", cert.id, cert.name,
        new_value=body.model_dump(mode="json"),
    )
    return CertificationResponse.model_validate(cert)


@router.patch("/certifications/{certification_id}", response_model=CertificationResponse)
async def update_certification(
    certification_id: int,
    body: CertificationUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> CertificationResponse:
    cert = await content.get_or_404(session, Certification, certification_id, "Certification")
    previous = content.apply_changes(cert, body.model_dump(exclude_unset=True))
    await session.flush()
    await _record(
        session, request, admin, "update", "certification", cert.id, cert.name,
        old_value=previous, new_value=body.model_dump(mode="json", exclude_unset=True),
    )
    return CertificationResponse.model_validate(cert)


@router.delete("/certifications/{certification_id}", response_model=MessageResponse)
async def delete_certification(
    certification_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    cert = await content.get_or_404(session, Certification, certification_id, "Certification")
    name = cert.name
    await session.delete(cert)
    await session.flush()
    await _record(session, request, admin, "delete", "certification", certification_id, name)
    return MessageResponse(message="Certification deleted successfully")


# ---------------------------------------------------------------------------
# Document categories
# ---------------------------------------------------------------------------


@router.get("/document-categories", response_model=DocumentCategoryListResponse)
async def list_document_categories(
    session: AsyncSession = Depends(get_async_session),
) -> DocumentCategoryListResponse:
    rows = await content.list_document_categories(session)
    return DocumentCategoryListResponse(
        categories=[DocumentCategoryResponse.model_validate(c) for c in rows],
        total=len(rows),
    )


async def _flush_unique_category(session: AsyncSession, category: DocumentCategory) -> None:
    try:
        async with session.begin_nested():
            session.add(category)
            await session.flush()
    except IntegrityError:
        raise ConflictError(f"Category '{category.name}' already exists") from None


@router.post(
    "/document-categories", response_model=DocumentCategoryResponse, status_code=201
)
async def create_document_category(
    body: DocumentCategoryCreate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentCategoryResponse:
    category = DocumentCategory(**body.model_dump())
    await _flush_unique_category(session, category)
    await _record(
        session, request, admin, "create", "document_category", category.id, category.name,
        new_value=body.model_dump(mode="json"),
    )
    return DocumentCategoryResponse.model_validate(category)


@router.patch(
    "/document-categories/{category_id}", response_model=DocumentCategoryResponse
)
async def update_document_category(
    category_id: int,
    body: DocumentCategoryUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentCategoryResponse:
    category = await content.get_or_404(session, DocumentCategory, category_id, "Category")
    previous = content.apply_changes(category, body.model_dump(exclude_unset=True))
    await _flush_unique_category(session, category)
    await _record(
        session, request, admin, "update", "document_category", category.id, category.name,
        old_value=previous, new_value=body.model_dump(mode="json", exclude_unset=True),
    )
    return DocumentCategoryResponse.model_validate(category)


@router.delete("/document-categories/{category_id}", response_model=MessageResponse)
async def delete_document_category(
    category_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    category = await content.get_or_404(session, DocumentCategory, category_id, "Category")
    name = category.name
    await session.delete(category)
    await session.flush()
    await _record(session, request, admin, "delete", "document_category", category_id, name)
    return MessageResponse(message="Category deleted successfully")


# ---------------------------------------------------------------------------
# Security controls
# ---------------------------------------------------------------------------


@router.get("/control-categories", response_model=ControlCategoryListResponse)
async def list_control_categories(
    session: AsyncSession = Depends(get_async_session),
) -> ControlCategoryListResponse:
    rows = await content.list_control_categories(session)
    return ControlCategoryListResponse(
        categories=[ControlCategoryResponse.model_validate(c) for c in rows],
        total=len(rows),
    )


@router.post(
    "/control-categories", response_model=ControlCategoryResponse, status_code=201
)
async def create_control_category(
    body: ControlCategoryCreate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ControlCategoryResponse:
    category = ControlCategory(**body.model_dump())
    session.add(category)
    await session.flush()
    await _record(
        session, request, admin, "create", "control_category", category.id, category.name,
        new_value=body.model_dump(mode="json"),
    )
    return ControlCategoryResponse.model_validate(category)


@router.patch(
    "/control-categories/{category_id}", response_model=ControlCategoryResponse
)
async def update_control_category(
    category_id: int,
    body: ControlCategoryUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ControlCategoryResponse:
    category = await content.get_or_404(
        session, ControlCategory, category_id, "Control category"
    )
    previous = content.apply_changes(category, body.model_dump(exclude_unset=True))
    await session.flush()
    await _record(
        session, request, admin, "update", "control_category", category.id, category.name,
        old_value=previous, new_value=body.model_dump(mode="json", exclude_unset=True),
    )
    return ControlCategoryResponse.model_validate(category)


@router.delete("/control-categories/{category_id}", response_model=MessageResponse)
async def delete_control_category(
    category_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Deletes the category together with its controls."""
    category = await content.get_or_404(
        session, ControlCategory, category_id, "Control category"
    )
    name = category.name
    await session.delete(category)
    await session.flush()
    await _record(session, request, admin, "delete", "control_category", category_id, name)
    return MessageResponse(message="Control category deleted successfully")


@router.get("/controls", response_model=ControlListResponse)
async def list_controls(
    category_id: int | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> ControlListResponse:
    rows = await content.list_controls(session, category_id)
    return ControlListResponse(
        controls=[ControlResponse.model_validate(c) for c in rows], total=len(rows)
    )


async def _control_response(session: AsyncSession, control: Control) -> ControlResponse:
    await session.refresh(control, attribute_names=["category"])
    return ControlResponse.model_validate(control)


@router.post("/controls", response_model=ControlResponse, status_code=201)
async def create_control(
    body: ControlCreate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ControlResponse:
    await content.ensure_control_category(session, body.category_id)
    control = Control(**body.model_dump())
    session.add(control)
    await session.flush()
    await _record(
        session, request, admin, "create", "control", control.id, control.title,
        new_value=body.model_dump(mode="json"),
    )
    return await _control_response(session, control)


@router.patch("/controls/{control_id}", response_model=ControlResponse)
async def update_control(
    control_id: int,
    body: ControlUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> ControlResponse:
    control = await content.get_or_404(session, Control, control_id, "Control")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("category_id") is not None:
        await content.ensure_control_category(session, changes["category_id"])
    previous = content.apply_changes(control, changes)
    await session.flush()
    await _record(
        session, request, admin, "update", "control", control.id, control.title,
        old_value=previous, new_value=body.model_dump(mode="json", exclude_unset=True),
    )
    return await _control_response(session, control)


@router.delete("/controls/{control_id}", response_model=MessageResponse)
async def delete_control(
    control_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    control = await content.get_or_404(session, Control, control_id, "Control")
    title = control.title
    await session.delete(control)
    await session.flush()
    await _record(session, request, admin, "delete", "control", control_id, title)
    return MessageResponse(message="Control deleted successfully")


# ---------------------------------------------------------------------------
# Security updates
# ---------------------------------------------------------------------------


@router.get("/security-updates", response_model=SecurityUpdateListResponse)
async def list_security_updates(
    session: AsyncSession = Depends(get_async_session),
) -> SecurityUpdateListResponse:
    rows = await content.list_security_updates(session)
    return SecurityUpdateListResponse(
        updates=[SecurityUpdateResponse.model_validate(u) for u in rows], total=len(rows)
    )


@router.get("/security-updates/all", response_model=SecurityUpdateListResponse)
async def list_all_security_updates(
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SecurityUpdateListResponse:
    rows = await content.list_security_updates(session, include_unpublished=True)
    return SecurityUpdateListResponse(
        updates=[SecurityUpdateResponse.model_validate(u) for u in rows], total=len(rows)
    )


@router.post("/security-updates", response_model=SecurityUpdateResponse, status_code=201)
async def create_security_update(
    body: SecurityUpdateCreate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SecurityUpdateResponse:
    values = body.model_dump()
    values["published_at"] = values["published_at"] or datetime.now(UTC)
    update = SecurityUpdate(**values)
    session.add(update)
    await session.flush()
    await _record(
        session, request, admin, "create", "security_update", update.id, update.title,
        new_value=body.model_dump(mode="json", exclude={"content"}),
    )
    return SecurityUpdateResponse.model_validate(update)


@router.patch("/security-updates/{update_id}", response_model=SecurityUpdateResponse)
async def update_security_update(
    update_id: int,
    body: SecurityUpdateUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SecurityUpdateResponse:
    update = await content.get_or_404(session, SecurityUpdate, update_id, "Security update")
    previous = content.apply_changes(update, body.model_dump(exclude_unset=True))
    previous.pop("content", None)
    await session.flush()
    await _record(
        session, request, admin, "update", "security_update", update.id, update.title,
        old_value=previous,
        new_value=body.model_dump(mode="json", exclude_unset=True, exclude={"content"}),
    )
    return SecurityUpdateResponse.model_validate(update)


@router.delete("/security-updates/{update_id}", response_model=MessageResponse)
async def delete_security_update(
    update_id: int,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    update = await content.get_or_404(session, SecurityUpdate, update_id, "Security update")
    title = update.title
    await session.delete(update)
    await session.flush()
    await _record(session, request, admin, "delete", "security_update", update_id, title)
    return MessageResponse(message="Security update deleted successfully")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    session: AsyncSession = Depends(get_async_session),
) -> SettingsResponse:
    return SettingsResponse(**await content.public_settings(session))


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    body: SettingsUpdate,
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> SettingsResponse:
    row, previous = await content.save_settings(session, body.model_dump(exclude_unset=True))
    await _record(
        session, request, admin, "update", "settings", row.id, row.company_name,
        old_value=previous, new_value=body.model_dump(mode="json", exclude_unset=True),
    )
    return SettingsResponse.model_validate(row)

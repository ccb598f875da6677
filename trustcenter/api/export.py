# =============================================================================
# Export API — Admin Download of Trust-Center Content
# =============================================================================
#
#   GET /api/export?format=json&include=certifications,controls&since=ISO
#   GET /api/export/{section}?format=json|csv&since=ISO
#
# Sections: certifications, controls, documents, security-updates,
# subprocessors. The full export is JSON only and is recorded in the
# activity log.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.api.deps import actor_from_request, get_current_admin
from trustcenter.db.engine import get_async_session
from trustcenter.db.models import AdminUser
from trustcenter.errors import InvalidInputError, NotFoundError
from trustcenter.services import export
from trustcenter.services.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["Export"])

ExportFormat = Literal["json", "csv"]


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("")
async def export_trust_center(
    request: Request,
    format: ExportFormat = Query(default="json"),
    include: str | None = Query(default=None, description="Comma-separated sections"),
    since: str | None = Query(default=None, description="ISO-8601; only rows updated since"),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> JSONResponse:
    sections = export.parse_sections(include)
    since_at = export.parse_since(since)
    if format == "csv":
        raise InvalidInputError(
            "CSV format requires a specific section. Use /api/export/{section}?format=csv"
        )

    data = await export.export_all(
        session, sections=sections, since=since_at, exported_by=admin.email
    )
    await log_activity(
        session,
        actor_from_request(request, admin),
        "export",
        "trust_center",
        new_value={"format": format, "sections": sections, "since": since},
        description=(
            f"Exported Trust Center data (format: {format}, "
            f"sections: {', '.join(sections)})"
        ),
    )
    logger.info("Trust center export by admin %d: %s", admin.id, sections)

    filename = f"trust-center-export-{datetime.now(UTC).date().isoformat()}.json"
    return JSONResponse(data, headers=_attachment(filename))


@router.get("/{section}")
async def export_one_section(
    section: str,
    format: ExportFormat = Query(default="json"),
    since: str | None = Query(default=None),
    admin: AdminUser = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    """JSON keyed by the section name, or a CSV attachment."""
    key = section.replace("-", "_")
    if key not in export.SECTIONS:
        raise NotFoundError("Unknown export section", supported=list(export.SECTIONS))

    data = await export.export_section(session, key, export.parse_since(since))

    if format == "csv":
        rows = export.flatten_controls(data) if key == "controls" else data
        return Response(
            content=export.to_csv(rows),
            media_type="text/csv",
            headers=_attachment(f"{section}.csv"),
        )
    body = data if key == "controls" else {key: data}
    return JSONResponse(body)

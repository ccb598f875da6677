# =============================================================================
# Trust-Center Export — JSON Snapshot and Per-Section CSV
# =============================================================================
#
# Admins export the public content for reuse in questionnaires and vendor
# portals. Only what the public site shows is exported:
#
#   certifications    status == active
#   controls          every category with its controls
#   documents         published, current version (metadata only, no files)
#   security_updates  published
#   subprocessors     is_active
#
# `since` narrows each section to rows updated at or after that instant
# (for controls: categories updated since then).
#
# CSV is per section only; the full export nests controls under categories,
# which does not flatten into a single table.
# =============================================================================

from __future__ import annotations

import csv
import io
import json
from datetime import UTC, datetime
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trustcenter.db.models import (
    Certification,
    CertificationStatus,
    ControlCategory,
    Document,
    DocumentStatus,
    SecurityUpdate,
    Subprocessor,
)
from trustcenter.errors import InvalidInputError
from trustcenter.services.content import public_settings

EXPORT_FORMAT_VERSION = "1.0"

SECTIONS = ("certifications", "controls", "documents", "security_updates", "subprocessors")

# Leading characters a spreadsheet would evaluate as a formula
CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_since(raw: str | None) -> datetime | None:
    """ISO-8601 date or datetime; naive values are taken as UTC."""
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInputError('Invalid date format for "since" parameter') from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_sections(raw: str | None) -> list[str]:
    """Comma-separated section names; empty means all of them."""
    if not raw:
        return list(SECTIONS)
    requested = [s.strip() for s in raw.split(",") if s.strip()]
    unknown = [s for s in requested if s not in SECTIONS]
    if unknown:
        raise InvalidInputError(
            f"Unknown export sections: {', '.join(unknown)}", supported=list(SECTIONS)
        )
    return list(dict.fromkeys(requested))


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


async def export_certifications(
    session: AsyncSession, since: datetime | None = None
) -> list[dict[str, Any]]:
    stmt = (
        select(Certification)
        .where(Certification.status == CertificationStatus.ACTIVE)
        .order_by(Certification.display_order, Certification.id)
    )
    if since is not None:
        stmt = stmt.where(Certification.updated_at >= since)
    result = await session.execute(stmt)
    return [
        {
            "id": c.id,
            "name": c.name,
            "issuer": c.issuer,
            "issue_date": c.issue_date.isoformat() if c.issue_date else None,
            "expiry_date": c.expiry_date.isoformat() if c.expiry_date else None,
            "description": c.description,
            "status": c.status.value,
            "display_order": c.display_order,
        }
        for c in result.scalars().all()
    ]


async def export_controls(
    session: AsyncSession, since: datetime | None = None
) -> dict[str, list[dict[str, Any]]]:
    stmt = (
        select(ControlCategory)
        .options(selectinload(ControlCategory.controls))
        .order_by(ControlCategory.sort_order, ControlCategory.id)
    )
    if since is not None:
        stmt = stmt.where(ControlCategory.updated_at >= since)
    result = await session.execute(stmt)
    return {
        "categories": [
            {
                "id": cat.id,
                "name": cat.name,
                "description": cat.description,
                "icon": cat.icon,
                "sort_order": cat.sort_order,
                "controls": [
                    {
                        "id": ctrl.id,
                        "title": ctrl.title,
                        "description": ctrl.description,
                        "sort_order": ctrl.sort_order,
                    }
                    for ctrl in cat.controls
                ],
            }
            for cat in result.scalars().all()
        ]
    }


def flatten_controls(controls: dict[str, list[dict[str, Any]]]) -> list[dict[str, Any]]:
    """One row per control, carrying its category's fields."""
    return [
        {
            "category_id": cat["id"],
            "category_name": cat["name"],
            "category_description": cat["description"],
            "control_id": ctrl["id"],
            "control_title": ctrl["title"],
            "control_description": ctrl["description"],
            "control_sort_order": ctrl["sort_order"],
        }
        for cat in controls["categories"]
        for ctrl in cat["controls"]
    ]


async def export_documents(
    session: AsyncSession, since: datetime | None = None
) -> list[dict[str, Any]]:
    stmt = (
        select(Document)
        .where(
            Document.status == DocumentStatus.PUBLISHED,
            Document.is_current_version.is_(True),
        )
        .order_by(Document.title, Document.id)
    )
    if since is not None:
        stmt = stmt.where(Document.updated_at >= since)
    result = await session.execute(stmt)
    return [
        {
            "id": d.id,
            "title": d.title,
            "description": d.description,
            "category": d.category,
            "version": d.version,
            "access_level": d.access_level.value,
            "status": d.status.value,
            "published_at": _iso(d.published_at),
            "last_updated": _iso(d.updated_at),
        }
        for d in result.scalars().all()
    ]


async def export_security_updates(
    session: AsyncSession, since: datetime | None = None
) -> list[dict[str, Any]]:
    stmt = (
        select(SecurityUpdate)
        .where(SecurityUpdate.published_at.is_not(None))
        .order_by(SecurityUpdate.published_at.desc(), SecurityUpdate.id.desc())
    )
    if since is not None:
        stmt = stmt.where(SecurityUpdate.updated_at >= since)
    result = await session.execute(stmt)
    return [
        {
            "id": u.id,
            "title": u.title,
            "content": u.content,
            "severity": u.severity.value if u.severity else None,
            "published_at": _iso(u.published_at),
            "created_at": _iso(u.created_at),
        }
        for u in result.scalars().all()
    ]


async def export_subprocessors(
    session: AsyncSession, since: datetime | None = None
) -> list[dict[str, Any]]:
    stmt = (
        select(Subprocessor)
        .where(Subprocessor.is_active.is_(True))
        .order_by(Subprocessor.display_order, Subprocessor.id)
    )
    if since is not None:
        stmt = stmt.where(Subprocessor.updated_at >= since)
    result = await session.execute(stmt)
    return [
        {
            "id": s.id,
            "name": s.name,
            "purpose": s.purpose,
            "data_location": s.data_location,
            "website_url": s.website_url,
            "category": s.category,
        }
        for s in result.scalars().all()
    ]


_EXPORTERS = {
    "certifications": export_certifications,
    "controls": export_controls,
    "documents": export_documents,
    "security_updates": export_security_updates,
    "subprocessors": export_subprocessors,
}


async def export_section(
    session: AsyncSession, section: str, since: datetime | None = None
) -> Any:
    return await _EXPORTERS[section](session, since)


async def export_all(
    session: AsyncSession,
    sections: list[str] | None = None,
    since: datetime | None = None,
    exported_by: str | None = None,
) -> dict[str, Any]:
    """Full snapshot: metadata, organization info, then each requested section."""
    branding = await public_settings(session)
    social_links = branding.get("social_links") or {}
    organization = {
        "name": branding.get("company_name"),
        "website": social_links.get("website"),
        "contact_email": branding.get("contact_email"),
        "support_email": branding.get("support_email"),
    }

    data: dict[str, Any] = {
        "export_metadata": {
            "version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "trust_center_name": organization["name"] or "Trust Center",
            "exported_by": exported_by,
        },
        "organization": organization,
    }
    # One AsyncSession cannot run queries concurrently; sections go in order
    for section in sections or SECTIONS:
        data[section] = await export_section(session, section, since)
    return data


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    if not isinstance(value, str):
        return str(value)
    if value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def to_csv(rows: Iterable[dict[str, Any]]) -> str:
    """Header from the first row's keys. Empty input gives an empty string."""
    rows = list(rows)
    if not rows:
        return ""
    headers = list(rows[0].keys())
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_value(row.get(h)) for h in headers])
    return output.getvalue()

# =============================================================================
# Organization Resolver — Email Domain → Organization
# =============================================================================
#
# Every requester from a company domain belongs to exactly one organization,
# created lazily on the first request from that domain. Requesters on
# personal mail providers (gmail.com, ...) never join an organization, so
# approvals granted to one of them never leak to strangers on the same
# provider.
#
# CONCURRENCY:
# Two first-time requests from the same domain may race to create the
# organization. The unique constraint on `email_domain` makes the loser's
# INSERT fail inside a SAVEPOINT; the loser then re-reads the winner's row.
#
# ACCESS TIERS (check_organization_access):
#   no_access               → refused outright
#   whitelisted + active    → every document auto-approved
#   anything else           → only documents already in approved_document_ids
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.db.models import Organization, OrganizationStatus

logger = logging.getLogger(__name__)

PERSONAL_EMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "yahoo.com",
        "outlook.com",
        "hotmail.com",
        "icloud.com",
        "protonmail.com",
        "aol.com",
        "mail.com",
        "yandex.com",
        "zoho.com",
    }
)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def extract_email_domain(email: str | None) -> str | None:
    """Lower-cased domain part, or None unless the address is `local@domain`."""
    if not email:
        return None
    parts = email.strip().split("@")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[1].lower()


def is_personal_domain(domain: str) -> bool:
    return domain.lower() in PERSONAL_EMAIL_DOMAINS


def derive_organization_name(domain: str, company: str | None = None) -> str:
    """Company name when given, else the capitalised first domain label."""
    if company and company.strip():
        return company.strip()
    first_label = domain.split(".")[0]
    return first_label[:1].upper() + first_label[1:]


def merge_document_ids(existing: list[int] | None, added: list[int]) -> list[int]:
    """Ordered set union: keeps existing order, appends new ids once."""
    merged = list(existing or [])
    seen = set(merged)
    for doc_id in added:
        if doc_id not in seen:
            merged.append(doc_id)
            seen.add(doc_id)
    return merged


@dataclass
class AccessDecision:
    has_access: bool
    auto_approve_all: bool = False
    approved_document_ids: set[int] = field(default_factory=set)


def check_organization_access(org: Organization | None) -> AccessDecision:
    if org is None:
        return AccessDecision(has_access=True)

    if org.status == OrganizationStatus.NO_ACCESS:
        return AccessDecision(has_access=False)

    if org.status == OrganizationStatus.WHITELISTED and org.is_active:
        return AccessDecision(has_access=True, auto_approve_all=True)

    return AccessDecision(
        has_access=True,
        approved_document_ids=set(org.approved_document_ids or []),
    )


def partition_documents(
    decision: AccessDecision, document_ids: list[int]
) -> tuple[list[int], list[int]]:
    """Split requested ids into (auto-approvable, needs review), order kept."""
    if decision.auto_approve_all:
        return list(document_ids), []
    approved = [d for d in document_ids if d in decision.approved_document_ids]
    pending = [d for d in document_ids if d not in decision.approved_document_ids]
    return approved, pending


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


async def get_organization_by_domain(
    session: AsyncSession, domain: str
) -> Organization | None:
    result = await session.execute(
        select(Organization).where(Organization.email_domain == domain.lower())
    )
    return result.scalar_one_or_none()


async def get_or_create_organization(
    session: AsyncSession,
    domain: str,
    company: str | None = None,
) -> Organization:
    """
    Return the organization for `domain`, creating it on first sight.

    Callers must not pass personal-provider domains.
    """
    domain = domain.lower()
    existing = await get_organization_by_domain(session, domain)
    if existing is not None:
        return existing

    org = Organization(
        name=derive_organization_name(domain, company),
        email_domain=domain,
        status=None,
        is_active=True,
        approved_document_ids=[],
    )
    try:
        async with session.begin_nested():
            session.add(org)
            await session.flush()
    except IntegrityError:
        # Lost the creation race: another transaction inserted the domain
        logger.info("Organization for domain %s created concurrently; reusing", domain)
        existing = await get_organization_by_domain(session, domain)
        if existing is None:
            raise
        return existing

    logger.info("Organization created: id=%d domain=%s", org.id, domain)
    return org


# ---------------------------------------------------------------------------
# Admin status transitions
# ---------------------------------------------------------------------------


def apply_status(org: Organization, status: OrganizationStatus) -> None:
    """Set an explicit tier; no_access also revokes, others reactivate."""
    org.status = status
    if status == OrganizationStatus.NO_ACCESS:
        org.revoked_at = datetime.now(UTC)
        org.is_active = False
    else:
        org.revoked_at = None
        org.is_active = True


def archive(org: Organization) -> None:
    """Soft delete: the row stays, access is revoked."""
    org.is_active = False
    org.status = OrganizationStatus.NO_ACCESS
    org.revoked_at = datetime.now(UTC)


def restore(org: Organization) -> None:
    org.is_active = True
    org.status = OrganizationStatus.CONDITIONAL
    org.revoked_at = None

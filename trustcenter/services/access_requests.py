# =============================================================================
# Access Request Workflow — Submit / Approve / Deny
# =============================================================================
#
# STATE MACHINE (DocumentRequest.status):
#
#   submit ──┬─▶ AUTO_APPROVED   (documents the organization already holds)
#            └─▶ PENDING ──approve──▶ APPROVED
#                        └─deny─────▶ DENIED
#
# APPROVED and DENIED are terminal; approve/deny on anything but PENDING is
# refused, which also makes batch operations idempotent.
#
# SUBMISSION SPLIT:
# A submission can produce two requests: one auto-approved request for the
# documents the requester's organization already holds, and one pending
# request for the rest. Personal-domain requesters have no organization, so
# everything they ask for is pending.
#
# ORDER OF EFFECTS (approve):
#   1. validate (exists, pending, organization not revoked), no writes yet
#   2. mutate request + organization, write approval rows, COMMIT
#   3. send the magic-link email (best effort → email_sent / email_error)
#   4. activity log entry
# Webhooks are emitted by the routes after the response (BackgroundTasks).
#
# CONCURRENCY: The organization row is loaded FOR UPDATE (populate_existing)
# before its approved set is unioned, so concurrent approvals for the same
# organization serialize on PostgreSQL. SQLite has no row locks; its
# database-level write lock gives the same effect.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.db.models import (
    Document,
    DocumentRequest,
    DocumentStatus,
    Organization,
    OrganizationDocumentApproval,
    OrganizationStatus,
    RequestStatus,
)
from trustcenter.errors import (
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    TrustCenterError,
)
from trustcenter.logging_config import mask_email
from trustcenter.services.activity import SYSTEM_ACTOR, Actor, log_activity
from trustcenter.services.magic_link import expiration_from_now, generate_token
from trustcenter.services.notifications import (
    LinkedDocument,
    send_magic_link_email,
    send_rejection_email,
)
from trustcenter.services.organizations import (
    check_organization_access,
    extract_email_domain,
    get_or_create_organization,
    is_personal_domain,
    merge_document_ids,
    partition_documents,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10

ORG_ACCESS_DENIED = (
    "Access denied. Your organization does not have permission to request documents."
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class SubmissionResult:
    auto_approved: bool
    message: str
    email_sent: bool | None = None
    email_error: str | None = None
    created: list[DocumentRequest] = field(default_factory=list)


@dataclass
class ReviewResult:
    request: DocumentRequest
    email_sent: bool
    email_error: str | None = None


@dataclass
class BatchItemResult:
    id: int
    status: str  # "approved" | "denied" | "skipped"
    reason: str | None = None
    email_sent: bool | None = None


@dataclass
class RequestDetail:
    request: DocumentRequest
    documents: list[Document]
    organization: Organization | None
    history: list[DocumentRequest]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dedupe(ids: list[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for doc_id in ids:
        if doc_id not in seen:
            seen.add(doc_id)
            ordered.append(doc_id)
    return ordered


async def load_documents(session: AsyncSession, ids: list[int]) -> list[Document]:
    """Documents for `ids`, in the order given; unknown ids are dropped."""
    if not ids:
        return []
    result = await session.execute(select(Document).where(Document.id.in_(ids)))
    by_id = {doc.id: doc for doc in result.scalars().all()}
    return [by_id[i] for i in ids if i in by_id]


def _linked(documents: list[Document]) -> list[LinkedDocument]:
    return [LinkedDocument(id=d.id, title=d.title) for d in documents]


def _org_blocks_approval(org: Organization | None) -> bool:
    return org is not None and (
        org.status == OrganizationStatus.NO_ACCESS or not org.is_active
    )


async def _lock_organization(
    session: AsyncSession, organization_id: int | None
) -> Organization | None:
    """Fresh read of the organization, row-locked until the next commit."""
    if organization_id is None:
        return None
    return await session.get(
        Organization, organization_id, with_for_update=True, populate_existing=True
    )


async def _get_request(session: AsyncSession, request_id: int) -> DocumentRequest:
    request = await session.get(DocumentRequest, request_id)
    if request is None:
        raise NotFoundError("Request not found")
    return request


async def _send_link(request: DocumentRequest, documents: list[Document]) -> tuple[bool, str | None]:
    try:
        await send_magic_link_email(
            to=request.requester_email,
            requester_name=request.requester_name,
            token=request.magic_link_token,
            documents=_linked(documents),
        )
    except TrustCenterError as e:
        logger.error(
            "Magic link email for request %d (%s) failed: %s",
            request.id,
            mask_email(request.requester_email),
            e.message,
        )
        return False, e.message
    return True, None


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


async def submit_request(
    session: AsyncSession,
    *,
    name: str | None,
    email: str | None,
    company: str | None,
    document_ids: list[int] | None,
    reason: str | None = None,
) -> SubmissionResult:
    """
    Record a requester's ask, auto-approving what their organization holds.

    Raises:
        InvalidInputError: missing fields, malformed email, unknown documents.
        ForbiddenError: the requester's organization is on no_access.
    """
    missing = [
        label
        for label, value in (
            ("name", name),
            ("email", email),
            ("company", company),
        )
        if not (value and value.strip())
    ]
    if not document_ids:
        missing.append("document_ids")
    if missing:
        raise InvalidInputError(
            f"Missing required fields: {', '.join(missing)}", fields=missing
        )

    email = email.strip()
    domain = extract_email_domain(email)
    if domain is None:
        raise InvalidInputError("Invalid email address")

    ids = _dedupe(document_ids)
    result = await session.execute(
        select(Document.id).where(
            Document.id.in_(ids), Document.status == DocumentStatus.PUBLISHED
        )
    )
    known = set(result.scalars().all())
    unknown = [i for i in ids if i not in known]
    if unknown:
        raise InvalidInputError(
            "Unknown or unavailable documents requested", document_ids=unknown
        )

    org: Organization | None = None
    if not is_personal_domain(domain):
        org = await get_or_create_organization(session, domain, company)

    decision = check_organization_access(org)
    if not decision.has_access:
        logger.info("Request from %s refused: organization on no_access", mask_email(email))
        raise ForbiddenError(ORG_ACCESS_DENIED)

    approved_ids, pending_ids = partition_documents(decision, ids)
    created: list[DocumentRequest] = []
    auto_request: DocumentRequest | None = None

    if approved_ids:
        auto_request = DocumentRequest(
            requester_name=name.strip(),
            requester_email=email,
            requester_company=company.strip(),
            request_reason=reason,
            organization_id=org.id if org else None,
            document_ids=approved_ids,
            status=RequestStatus.AUTO_APPROVED,
            auto_approved=True,
            magic_link_token=generate_token(),
            magic_link_expires_at=expiration_from_now(),
            reviewed_at=datetime.now(UTC),
        )
        session.add(auto_request)
        created.append(auto_request)

    if pending_ids:
        pending_request = DocumentRequest(
            requester_name=name.strip(),
            requester_email=email,
            requester_company=company.strip(),
            request_reason=reason,
            organization_id=org.id if org else None,
            document_ids=pending_ids,
            status=RequestStatus.PENDING,
            auto_approved=False,
        )
        session.add(pending_request)
        created.append(pending_request)

    await session.flush()
    await session.commit()

    logger.info(
        "Request submitted by %s: auto_approved=%d pending=%d",
        mask_email(email),
        len(approved_ids),
        len(pending_ids),
    )

    if auto_request is None:
        return SubmissionResult(
            auto_approved=False,
            message="Your request has been submitted and is under review.",
            created=created,
        )

    documents = await load_documents(session, approved_ids)
    email_sent, email_error = await _send_link(auto_request, documents)

    await log_activity(
        session,
        SYSTEM_ACTOR,
        "request_auto_approved",
        "document_request",
        entity_id=auto_request.id,
        entity_name=auto_request.requester_email,
        new_value={"status": RequestStatus.AUTO_APPROVED.value, "document_ids": approved_ids},
        description=(
            f"Auto-approved {len(approved_ids)} document(s) for "
            f"{org.name if org else auto_request.requester_company}"
        ),
    )
    await session.commit()

    message = (
        f"Access granted for {len(approved_ids)} document(s). "
        "Check your email for the access link."
    )
    if pending_ids:
        message += f" The remaining {len(pending_ids)} document(s) are under review."

    return SubmissionResult(
        auto_approved=True,
        message=message,
        email_sent=email_sent,
        email_error=email_error,
        created=created,
    )


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------


async def _approve_pending(
    session: AsyncSession,
    request: DocumentRequest,
    org: Organization | None,
    actor: Actor,
    admin_notes: str | None,
    expiration_days: int | None,
) -> None:
    """Apply the approval writes and commit. Caller has validated."""
    now = datetime.now(UTC)

    request.status = RequestStatus.APPROVED
    request.magic_link_token = generate_token()
    request.magic_link_expires_at = expiration_from_now(now=now)
    if expiration_days is not None and expiration_days > 0:
        request.access_expires_at = now + timedelta(days=expiration_days)
        request.expiration_days = expiration_days
    else:
        request.access_expires_at = None
        request.expiration_days = None
    request.reviewed_by = actor.admin_id
    request.reviewed_at = now
    if admin_notes is not None:
        request.admin_notes = admin_notes

    if org is not None:
        org.approved_document_ids = merge_document_ids(
            org.approved_document_ids, list(request.document_ids)
        )
        if org.status is None or org.status == OrganizationStatus.NO_ACCESS:
            org.status = OrganizationStatus.CONDITIONAL
        if org.first_approved_at is None:
            org.first_approved_at = now
        org.last_approved_at = now
        for doc_id in request.document_ids:
            session.add(
                OrganizationDocumentApproval(
                    organization_id=org.id,
                    document_id=doc_id,
                    approved_by=actor.admin_id,
                    request_id=request.id,
                )
            )

    await session.commit()


async def approve_request(
    session: AsyncSession,
    request_id: int,
    actor: Actor,
    admin_notes: str | None = None,
    expiration_days: int | None = None,
) -> ReviewResult:
    """
    Approve a pending request and email the magic link.

    Raises:
        NotFoundError: no such request.
        ForbiddenError: already reviewed, or organization revoked (no writes).
    """
    request = await _get_request(session, request_id)
    if request.status != RequestStatus.PENDING:
        raise ForbiddenError(
            "Request has already been reviewed", status=request.status.value
        )

    org = await _lock_organization(session, request.organization_id)
    if _org_blocks_approval(org):
        raise ForbiddenError("Organization access has been revoked")

    await _approve_pending(session, request, org, actor, admin_notes, expiration_days)
    logger.info("Request %d approved by admin %s", request.id, actor.admin_id)

    documents = await load_documents(session, list(request.document_ids))
    email_sent, email_error = await _send_link(request, documents)

    await log_activity(
        session,
        actor,
        "approval",
        "document_request",
        entity_id=request.id,
        entity_name=request.requester_email,
        old_value={"status": RequestStatus.PENDING.value},
        new_value={"status": RequestStatus.APPROVED.value},
        description=f"Approved document request from {request.requester_name}",
    )
    await session.commit()
    return ReviewResult(request=request, email_sent=email_sent, email_error=email_error)


# ---------------------------------------------------------------------------
# Deny
# ---------------------------------------------------------------------------


async def _deny_pending(
    session: AsyncSession,
    request: DocumentRequest,
    actor: Actor,
    admin_notes: str | None,
) -> None:
    request.status = RequestStatus.DENIED
    request.reviewed_by = actor.admin_id
    request.reviewed_at = datetime.now(UTC)
    if admin_notes is not None:
        request.admin_notes = admin_notes
    await session.commit()


async def deny_request(
    session: AsyncSession,
    request_id: int,
    actor: Actor,
    reason: str | None = None,
    admin_notes: str | None = None,
) -> ReviewResult:
    """Deny a pending request. The organization is never touched."""
    request = await _get_request(session, request_id)
    if request.status != RequestStatus.PENDING:
        raise ForbiddenError(
            "Request has already been reviewed", status=request.status.value
        )

    await _deny_pending(session, request, actor, admin_notes)
    logger.info("Request %d denied by admin %s", request.id, actor.admin_id)

    email_sent = await send_rejection_email(
        request.requester_email, request.requester_name, reason
    )

    await log_activity(
        session,
        actor,
        "denial",
        "document_request",
        entity_id=request.id,
        entity_name=request.requester_email,
        old_value={"status": RequestStatus.PENDING.value},
        new_value={"status": RequestStatus.DENIED.value, "reason": reason},
        description=f"Denied document request from {request.requester_name}",
    )
    await session.commit()
    return ReviewResult(request=request, email_sent=email_sent)


# ---------------------------------------------------------------------------
# Batch variants
# ---------------------------------------------------------------------------


async def batch_approve(
    session: AsyncSession,
    request_ids: list[int],
    actor: Actor,
    admin_notes: str | None = None,
) -> tuple[list[BatchItemResult], list[DocumentRequest]]:
    """
    Approve each pending request in order, skipping the rest.

    Returns (per-id outcomes, requests actually approved). Running the same
    batch twice approves nothing the second time.
    """
    if not request_ids:
        raise InvalidInputError("request_ids must not be empty")

    results: list[BatchItemResult] = []
    approved: list[DocumentRequest] = []
    for request_id in _dedupe(request_ids):
        request = await session.get(DocumentRequest, request_id)
        if request is None:
            results.append(BatchItemResult(request_id, "skipped", "not found"))
            continue
        if request.status != RequestStatus.PENDING:
            results.append(BatchItemResult(request_id, "skipped", "already reviewed"))
            continue

        org = await _lock_organization(session, request.organization_id)
        if _org_blocks_approval(org):
            results.append(
                BatchItemResult(request_id, "skipped", "organization access revoked")
            )
            continue

        await _approve_pending(session, request, org, actor, admin_notes, None)
        documents = await load_documents(session, list(request.document_ids))
        email_sent, _ = await _send_link(request, documents)
        results.append(BatchItemResult(request_id, "approved", email_sent=email_sent))
        approved.append(request)

    if approved:
        await log_activity(
            session,
            actor,
            "bulk_approval",
            "document_request",
            entity_id=",".join(str(r.id) for r in approved),
            new_value={"status": RequestStatus.APPROVED.value, "count": len(approved)},
            description=f"Bulk approved {len(approved)} document request(s)",
        )
        await session.commit()

    logger.info(
        "Batch approve by admin %s: %d approved, %d skipped",
        actor.admin_id,
        len(approved),
        len(results) - len(approved),
    )
    return results, approved


async def batch_deny(
    session: AsyncSession,
    request_ids: list[int],
    actor: Actor,
    reason: str | None = None,
    admin_notes: str | None = None,
) -> tuple[list[BatchItemResult], list[DocumentRequest]]:
    if not request_ids:
        raise InvalidInputError("request_ids must not be empty")

    results: list[BatchItemResult] = []
    denied: list[DocumentRequest] = []
    for request_id in _dedupe(request_ids):
        request = await session.get(DocumentRequest, request_id)
        if request is None:
            results.append(BatchItemResult(request_id, "skipped", "not found"))
            continue
        if request.status != RequestStatus.PENDING:
            results.append(BatchItemResult(request_id, "skipped", "already reviewed"))
            continue

        await _deny_pending(session, request, actor, admin_notes)
        email_sent = await send_rejection_email(
            request.requester_email, request.requester_name, reason
        )
        results.append(BatchItemResult(request_id, "denied", email_sent=email_sent))
        denied.append(request)

    if denied:
        await log_activity(
            session,
            actor,
            "bulk_denial",
            "document_request",
            entity_id=",".join(str(r.id) for r in denied),
            new_value={"status": RequestStatus.DENIED.value, "count": len(denied), "reason": reason},
            description=f"Bulk denied {len(denied)} document request(s)",
        )
        await session.commit()

    return results, denied


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def list_requests(
    session: AsyncSession,
    status: RequestStatus | None = None,
    organization_id: int | None = None,
) -> list[DocumentRequest]:
    stmt = select(DocumentRequest)
    if status is not None:
        stmt = stmt.where(DocumentRequest.status == status)
    if organization_id is not None:
        stmt = stmt.where(DocumentRequest.organization_id == organization_id)
    stmt = stmt.order_by(DocumentRequest.created_at.desc(), DocumentRequest.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def requests_for_email(
    session: AsyncSession,
    email: str,
    exclude_id: int | None = None,
    limit: int | None = None,
) -> list[DocumentRequest]:
    stmt = select(DocumentRequest).where(
        func.lower(DocumentRequest.requester_email) == email.lower()
    )
    if exclude_id is not None:
        stmt = stmt.where(DocumentRequest.id != exclude_id)
    stmt = stmt.order_by(DocumentRequest.created_at.desc(), DocumentRequest.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_request_detail(session: AsyncSession, request_id: int) -> RequestDetail:
    request = await _get_request(session, request_id)
    documents = await load_documents(session, list(request.document_ids))
    org = (
        await session.get(Organization, request.organization_id)
        if request.organization_id is not None
        else None
    )
    history = await requests_for_email(
        session, request.requester_email, exclude_id=request.id, limit=HISTORY_LIMIT
    )
    return RequestDetail(request=request, documents=documents, organization=org, history=history)

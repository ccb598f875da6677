# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌────────────────────┐        ┌───────────────────────────────┐
# │  organizations     │◀──N:1──│  document_requests            │
# ├────────────────────┤        ├───────────────────────────────┤
# │ email_domain (UQ)  │        │ requester_* / request_reason  │
# │ status (nullable)  │        │ document_ids (json list)      │
# │ is_active          │        │ status (pending → approved|   │
# │ approved_document_ │        │   denied; or auto_approved)   │
# │   ids (json list)  │        │ magic_link_token (UQ)         │
# │ revoked_at ...     │        │ magic_link_expires_at/used_at │
# └────────────────────┘        │ access_expires_at ...         │
#          │1:N                 └───────────────────────────────┘
#          ▼
# ┌──────────────────────────────────┐   ┌────────────────────┐
# │ organization_document_approvals  │──▶│  documents         │
# │ (org, document, admin, request)  │   │  access_level      │
# └──────────────────────────────────┘   │  version chain     │
#                                        └────────────────────┘
#
#   ┌─────────────────────┐        ┌─────────────────────┐
#   │ control_categories  │──1:N──▶│ controls            │
#   └─────────────────────┘        └─────────────────────┘
#   ┌─────────────────────┐        ┌─────────────────────┐
#   │ contact_submissions │──1:N──▶│ ticket_messages     │
#   │ (uuid id = ticket)  │        │ sender_type (admin, │
#   └─────────────────────┘        │   user)             │
#                                  └─────────────────────┘
#
#   admin_users, activity_logs, outbound_webhooks,
#   integration_settings, salesforce_connections, certifications,
#   document_categories, security_updates, subprocessors,
#   subprocessor_subscriptions, trust_center_settings  (standalone)
#
# DESIGN DECISIONS:
#
# 1. Document-id sets (`approved_document_ids`, `document_ids`) are JSON lists
#    (JSONB on PostgreSQL). They are small, always read whole, and written by
#    reassigning a new list; SQLAlchemy does not track in-place mutation.
#
# 2. Enums are stored as their string values (`native_enum=False`) so the
#    same schema runs on PostgreSQL and SQLite.
#
# 3. Organizations are never hard-deleted. Revocation flips `is_active` and
#    `status`, keeping approval history meaningful.
#
# 4. Timestamps get a Python-side UTC default (microsecond precision, needed
#    for stable newest-first ordering) plus a server default.
# =============================================================================

import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class OrganizationStatus(str, enum.Enum):
    """
    Access tier of an organization.

    A freshly created organization has no status (NULL) until an admin
    approves something for it or sets one explicitly.
    """

    WHITELISTED = "whitelisted"  # every document auto-approved
    CONDITIONAL = "conditional"  # only documents in approved_document_ids
    NO_ACCESS = "no_access"      # requests refused, approvals blocked


class RequestStatus(str, enum.Enum):
    """
    State machine:
        PENDING → APPROVED
                → DENIED
        AUTO_APPROVED (created directly, never reviewed)
    """

    PENDING = "pending"
    APPROVED = "approved"
    AUTO_APPROVED = "auto_approved"
    DENIED = "denied"


class AccessLevel(str, enum.Enum):
    PUBLIC = "public"
    RESTRICTED = "restricted"


class DocumentStatus(str, enum.Enum):
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Organization(Base):
    """A company, identified by the email domain its requesters use."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Unique: at most one organization per domain, even under concurrent
    # first requests (see services/organizations.py)
    email_domain: Mapped[str] = mapped_column(
        String(253), nullable=False, unique=True
    )

    status: Mapped[OrganizationStatus | None] = mapped_column(
        _enum_column(OrganizationStatus), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    approved_document_ids: Mapped[list[int]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    first_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Stamped when the Salesforce sync last wrote this row
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Organization(id={self.id}, domain='{self.email_domain}', "
            f"status={self.status})>"
        )


class Document(Base):
    """
    A published compliance artifact (SOC 2 report, ISO certificate, policy).

    Versioning: uploading with `replaces_document_id` archives the old row
    and creates a new one; only the newest row in a chain is current.
    """

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    access_level: Mapped[AccessLevel] = mapped_column(
        _enum_column(AccessLevel), nullable=False, default=AccessLevel.RESTRICTED
    )
    status: Mapped[DocumentStatus] = mapped_column(
        _enum_column(DocumentStatus),
        nullable=False,
        default=DocumentStatus.PUBLISHED,
    )

    # Path relative to settings.uploads_dir
    file_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current_version: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    replaces_document_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )

    uploaded_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Document(id={self.id}, title='{self.title}', "
            f"access_level={self.access_level})>"
        )


class DocumentRequest(Base):
    """
    A requester's ask for one or more documents.

    Once a request leaves PENDING its status is final; the only later write is
    stamping `magic_link_used_at` on the first link resolution.
    """

    __tablename__ = "document_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)
    requester_email: Mapped[str] = mapped_column(String(254), nullable=False)
    requester_company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    request_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # NULL for personal-domain requesters
    organization_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )

    document_ids: Mapped[list[int]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    status: Mapped[RequestStatus] = mapped_column(
        _enum_column(RequestStatus), nullable=False, default=RequestStatus.PENDING
    )
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Bearer credential; NULL until approved
    magic_link_token: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True
    )
    magic_link_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    magic_link_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # NULL = permanent access once the link is valid
    access_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expiration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    reviewed_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DocumentRequest(id={self.id}, status={self.status})>"


class OrganizationDocumentApproval(Base):
    """Audit child row: one per document per admin approval."""

    __tablename__ = "organization_document_approvals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    approved_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    request_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("document_requests.id", ondelete="SET NULL"), nullable=True
    )
    approved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class AdminUser(Base):
    """
    An administrator. Authenticates with a bearer token whose SHA-256 hash is
    stored; the raw token is shown once at creation.
    """

    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="admin")

    token_prefix: Mapped[str] = mapped_column(String(12), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AdminUser(id={self.id}, prefix='{self.token_prefix}')>"


class ActivityLog(Base):
    """
    Append-only audit trail of admin and system actions.

    `admin_email` is denormalised so entries survive admin deletion.
    """

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    admin_user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    admin_email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    old_value: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class OutboundWebhook(Base):
    """An admin-registered HTTP endpoint subscribed to workflow events."""

    __tablename__ = "outbound_webhooks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    event_types: Mapped[list[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    # HMAC-SHA256 signing key
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class IntegrationSetting(Base):
    """Per-provider integration config (secrets encrypted at rest)."""

    __tablename__ = "integration_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    updated_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class SalesforceConnection(Base):
    """OAuth tokens for the connected Salesforce org. At most one is active."""

    __tablename__ = "salesforce_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_url: Mapped[str] = mapped_column(String(500), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    token_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    scope: Mapped[str | None] = mapped_column(String(500), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    salesforce_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    salesforce_username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    salesforce_display_name: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    salesforce_org_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    connected_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Trust-center content
# ---------------------------------------------------------------------------


class CertificationStatus(str, enum.Enum):
    ACTIVE = "active"      # shown on the public page
    INACTIVE = "inactive"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TicketStatus(str, enum.Enum):
    """
    NEW → IN_PROGRESS → RESOLVED
    A requester reply to a resolved ticket moves it back to IN_PROGRESS.
    """

    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class TicketPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Certification(Base):
    __tablename__ = "certifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    issuer: Mapped[str] = mapped_column(String(255), nullable=False)
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[CertificationStatus] = mapped_column(
        _enum_column(CertificationStatus),
        nullable=False,
        default=CertificationStatus.ACTIVE,
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class DocumentCategory(Base):
    """Admin-curated labels for the public document catalogue."""

    __tablename__ = "document_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class ControlCategory(Base):
    """A group of security controls (e.g. "Access Control")."""

    __tablename__ = "control_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    controls: Mapped[list["Control"]] = relationship(
        back_populates="category",
        order_by="Control.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Control(Base):
    __tablename__ = "controls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("control_categories.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    category: Mapped[ControlCategory] = relationship(back_populates="controls")


class SecurityUpdate(Base):
    """An advisory. Publicly visible once `published_at` is in the past."""

    __tablename__ = "security_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[Severity | None] = mapped_column(
        _enum_column(Severity), nullable=True
    )
    # NULL = draft; a future timestamp schedules publication
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class Subprocessor(Base):
    """A third party that processes customer data on the company's behalf."""

    __tablename__ = "subprocessors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    data_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="Other")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class SubprocessorSubscription(Base):
    """An address to notify when the subprocessor list changes."""

    __tablename__ = "subprocessor_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Stored lower-cased
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class TrustCenterSettings(Base):
    """Branding for the public site. At most one row; defaults apply without it."""

    __tablename__ = "trust_center_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hero_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hero_subtitle: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    secondary_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    support_email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    # {"website": ..., "linkedin": ..., ...}
    social_links: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


# ---------------------------------------------------------------------------
# Contact tickets
# ---------------------------------------------------------------------------


def _ticket_id() -> str:
    return str(uuid.uuid4())


class ContactSubmission(Base):
    """
    A contact-form ticket.

    The UUID id appears in reply subjects as `[#<id>]` so inbound email can
    be threaded back onto the ticket.
    """

    __tablename__ = "contact_submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_ticket_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False)
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        _enum_column(TicketStatus), nullable=False, default=TicketStatus.NEW
    )
    priority: Mapped[TicketPriority] = mapped_column(
        _enum_column(TicketPriority), nullable=False, default=TicketPriority.NORMAL
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    messages: Mapped[list["TicketMessage"]] = relationship(
        back_populates="ticket",
        order_by="TicketMessage.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TicketMessage(Base):
    """One message in a ticket thread, from an admin or the requester."""

    __tablename__ = "ticket_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("contact_submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_type: Mapped[str] = mapped_column(String(16), nullable=False)  # admin | user
    sender_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("admin_users.id", ondelete="SET NULL"), nullable=True
    )
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    ticket: Mapped[ContactSubmission] = relationship(back_populates="messages")


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------
Index("ix_document_requests_email", DocumentRequest.requester_email)
Index("ix_document_requests_status_created", DocumentRequest.status, DocumentRequest.created_at)
Index("ix_document_requests_org", DocumentRequest.organization_id)
Index("ix_documents_current", Document.status, Document.is_current_version)
Index("ix_activity_logs_created", ActivityLog.created_at)
Index("ix_org_doc_approvals_org", OrganizationDocumentApproval.organization_id)
Index("ix_controls_category", Control.category_id)
Index("ix_security_updates_published", SecurityUpdate.published_at)
Index("ix_ticket_messages_ticket", TicketMessage.ticket_id)
Index("ix_contact_submissions_status_created", ContactSubmission.status, ContactSubmission.created_at)

# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
# FastAPI uses them for body validation and OpenAPI docs (/docs).
#
# DESIGN DECISION: The public submission body is deliberately lenient
# (every field optional). The workflow validates required fields itself so
# the 400 lists exactly which fields are missing. Admin bodies use normal Pydantic constraints.
# =============================================================================

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from trustcenter.db.models import (
    AccessLevel,
    CertificationStatus,
    DocumentStatus,
    OrganizationStatus,
    Severity,
    TicketPriority,
    TicketStatus,
)


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


class DocumentRequestCreate(BaseModel):
    """
    Request body for POST /api/document-requests.

    Example:
        {
            "name": "Jane Doe",
            "email": "jane@acme.io",
            "company": "Acme",
            "document_ids": [1, 2],
            "reason": "Vendor security review"
        }
    """

    name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=254)
    company: str | None = Field(default=None, max_length=255)
    document_ids: list[int] | None = Field(
        default=None,
        description="Published document IDs being requested. Duplicates collapse.",
    )
    reason: str | None = Field(default=None, max_length=5000)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "name": "Jane Doe",
                    "email": "jane@acme.io",
                    "company": "Acme",
                    "document_ids": [1, 2],
                    "reason": "Vendor security review",
                }
            ]
        }
    )


class SignupRequest(BaseModel):
    """Bootstrap the first admin (POST /api/auth/signup)."""

    email: str = Field(..., min_length=3, max_length=254)
    full_name: str | None = Field(default=None, max_length=255)


class ContactFormRequest(BaseModel):
    """POST /api/contact. Required fields are checked by the handler."""

    name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=254)
    organization: str | None = Field(default=None, max_length=255)
    subject: str | None = Field(default=None, max_length=500)
    message: str | None = Field(default=None, max_length=10000)


class SubscribeRequest(BaseModel):
    email: str | None = Field(default=None, max_length=254)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


class ApproveRequestBody(BaseModel):
    admin_notes: str | None = None
    expiration_days: int | None = Field(
        default=None,
        ge=0,
        le=3650,
        description="Business access window in days. 0 or omitted = permanent.",
    )


class DenyRequestBody(BaseModel):
    reason: str | None = Field(
        default=None,
        description="Shown to the requester in the rejection email.",
    )
    admin_notes: str | None = None


class BatchApproveBody(BaseModel):
    request_ids: list[int] = Field(default_factory=list)
    admin_notes: str | None = None


class BatchDenyBody(BaseModel):
    request_ids: list[int] = Field(default_factory=list)
    reason: str | None = None
    admin_notes: str | None = None


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


class OrganizationUpdate(BaseModel):
    """PATCH /api/organizations/{id}. Omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    approved_document_ids: list[int] | None = None


class OrganizationStatusUpdate(BaseModel):
    status: OrganizationStatus


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentUpdate(BaseModel):
    """PATCH /api/documents/{id}. File replacement goes through upload."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    access_level: AccessLevel | None = None
    status: DocumentStatus | None = None
    version: str | None = Field(default=None, max_length=50)


# ---------------------------------------------------------------------------
# Admin users
# ---------------------------------------------------------------------------


class CreateAdminUserRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    full_name: str | None = Field(default=None, max_length=255)
    role: Literal["admin", "viewer"] = "admin"


class UpdateAdminUserRequest(BaseModel):
    full_name: str | None = Field(default=None, max_length=255)
    role: Literal["admin", "viewer"] | None = None
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class CreateWebhookRequest(BaseModel):
    url: str = Field(..., min_length=8, max_length=2000, examples=["https://hooks.acme.io/tc"])
    description: str | None = Field(default=None, max_length=500)
    event_types: list[str] = Field(
        ...,
        min_length=1,
        description="Subset of: request.created, request.approved, request.denied",
    )


# ---------------------------------------------------------------------------
# Salesforce
# ---------------------------------------------------------------------------


class SalesforceConfigUpdate(BaseModel):
    """PUT /api/salesforce/config. Blank fields keep their stored value."""

    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    auth_base_url: str | None = None
    api_version: str | None = None
    status_field: str | None = None
    allowed_statuses: str | None = None
    domain_field: str | None = None


# ---------------------------------------------------------------------------
# Trust-center content
# ---------------------------------------------------------------------------


class CertificationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["SOC 2 Type II"])
    issuer: str = Field(..., min_length=1, max_length=255, examples=["AICPA"])
    issue_date: date | None = None
    expiry_date: date | None = None
    description: str | None = None
    status: CertificationStatus = CertificationStatus.ACTIVE
    display_order: int = 0


class CertificationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    issuer: str | None = Field(default=None, min_length=1, max_length=255)
    issue_date: date | None = None
    expiry_date: date | None = None
    description: str | None = None
    status: CertificationStatus | None = None
    display_order: int | None = None


class DocumentCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    display_order: int = 0


class DocumentCategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    display_order: int | None = None


class ControlCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["Access Control"])
    description: str | None = None
    icon: str | None = Field(default=None, max_length=100)
    sort_order: int = 0


class ControlCategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=100)
    sort_order: int | None = None


class ControlCreate(BaseModel):
    category_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    sort_order: int = 0


class ControlUpdate(BaseModel):
    category_id: int | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    sort_order: int | None = None


class SecurityUpdateCreate(BaseModel):
    """POST /api/security-updates. `published_at` defaults to now."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    severity: Severity | None = None
    published_at: datetime | None = None


class SecurityUpdateUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    content: str | None = Field(default=None, min_length=1)
    severity: Severity | None = None
    published_at: datetime | None = Field(
        default=None, description="Explicit null unpublishes the update."
    )


class SubprocessorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["Amazon Web Services"])
    purpose: str = Field(..., min_length=1, examples=["Cloud hosting"])
    data_location: str | None = Field(default=None, max_length=255)
    website_url: str | None = Field(default=None, max_length=2000)
    category: str = Field(default="Other", max_length=100)
    is_active: bool = True
    display_order: int = 0


class SubprocessorUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    purpose: str | None = Field(default=None, min_length=1)
    data_location: str | None = Field(default=None, max_length=255)
    website_url: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None
    display_order: int | None = None


class SettingsUpdate(BaseModel):
    """PUT /api/settings. Omitted fields keep their stored value."""

    company_name: str | None = Field(default=None, min_length=1, max_length=255)
    hero_title: str | None = Field(default=None, max_length=255)
    hero_subtitle: str | None = None
    primary_color: str | None = Field(default=None, max_length=20)
    secondary_color: str | None = Field(default=None, max_length=20)
    logo_url: str | None = Field(default=None, max_length=2000)
    contact_email: str | None = Field(default=None, max_length=254)
    support_email: str | None = Field(default=None, max_length=254)
    social_links: dict[str, str] | None = None


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


class TicketReplyRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=10000)


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketPriorityUpdate(BaseModel):
    priority: TicketPriority

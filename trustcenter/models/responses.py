# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API.
#
# DESIGN DECISION: Separate response models from DB models.
# Several columns must never leave the server: admin token hashes, webhook
# secrets after creation, OAuth tokens, and magic-link tokens in admin
# listings (only the approve response carries the fresh token). Response models control exactly what is exposed.
# =============================================================================

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from trustcenter.db.models import (
    CertificationStatus,
    Severity,
    TicketPriority,
    TicketStatus,
)


class HealthResponse(BaseModel):
    """Response for GET /health; confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    category: str | None = None
    access_level: str
    status: str
    file_name: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    version: str | None = None
    version_number: int
    is_current_version: bool
    replaces_document_id: int | None = None
    published_at: datetime | None = None
    archived_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class DocumentSummary(BaseModel):
    id: int
    title: str

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Document requests
# ---------------------------------------------------------------------------


class SubmissionResponse(BaseModel):
    """Response for POST /api/document-requests."""

    success: bool = True
    auto_approved: bool = Field(description="True if any part was approved immediately")
    message: str
    email_sent: bool | None = Field(
        default=None,
        description="Whether the magic-link email went out (auto-approved only)",
    )


class OrganizationSummary(BaseModel):
    id: int
    name: str
    email_domain: str
    status: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DocumentRequestResponse(BaseModel):
    """Admin view of a request. The magic-link token is never included."""

    id: int
    requester_name: str
    requester_email: str
    requester_company: str | None = None
    request_reason: str | None = None
    organization_id: int | None = None
    document_ids: list[int]
    status: str
    auto_approved: bool
    magic_link_expires_at: datetime | None = None
    magic_link_used_at: datetime | None = None
    access_expires_at: datetime | None = None
    expiration_days: int | None = None
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    documents: list[DocumentSummary] = Field(default_factory=list)
    organization: OrganizationSummary | None = None


class DocumentRequestListResponse(BaseModel):
    requests: list[DocumentRequestResponse]
    total: int


class DocumentRequestDetailResponse(DocumentRequestResponse):
    history: list[DocumentRequestResponse] = Field(
        default_factory=list,
        description="Earlier requests from the same email, newest first (max 10)",
    )


class ReviewResponse(BaseModel):
    success: bool = True
    request: DocumentRequestResponse
    email_sent: bool
    email_error: str | None = None
    magic_link_token: str | None = Field(
        default=None,
        description="Set on approval so the admin can share the link by hand",
    )


class BatchItemResponse(BaseModel):
    id: int
    status: str
    reason: str | None = None
    email_sent: bool | None = None


class BatchResponse(BaseModel):
    success: bool = True
    processed: int = Field(description="Requests actually approved or denied")
    skipped: int
    results: list[BatchItemResponse]


# ---------------------------------------------------------------------------
# Magic-link access
# ---------------------------------------------------------------------------


class AccessDocumentResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    category: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None

    model_config = ConfigDict(from_attributes=True)


class AccessRequestInfo(BaseModel):
    id: int
    requester_name: str
    requester_company: str | None = None
    magic_link_expires_at: datetime | None = None
    documents: list[AccessDocumentResponse]


class AccessResponse(BaseModel):
    request: AccessRequestInfo


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


class OrganizationResponse(BaseModel):
    id: int
    name: str
    email_domain: str
    status: str | None = None
    is_active: bool
    approved_document_ids: list[int]
    revoked_at: datetime | None = None
    first_approved_at: datetime | None = None
    last_approved_at: datetime | None = None
    last_synced_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrganizationListResponse(BaseModel):
    organizations: list[OrganizationResponse]
    total: int


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class AdminStatsResponse(BaseModel):
    """Dashboard counters for GET /api/admin/stats."""

    total_documents: int
    published_documents: int
    total_requests: int
    pending_requests: int
    approved_requests: int
    auto_approved_requests: int
    denied_requests: int
    total_organizations: int
    whitelisted_organizations: int
    revoked_organizations: int


class AdminUserResponse(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    role: str
    token_prefix: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminUserCreatedResponse(AdminUserResponse):
    """Returned once on creation; `token` is never shown again."""

    token: str = Field(description="Raw bearer token. Store it securely.")


class AdminUserListResponse(BaseModel):
    users: list[AdminUserResponse]
    total: int


class ActivityLogResponse(BaseModel):
    id: int
    admin_user_id: int | None = None
    admin_email: str | None = None
    action_type: str
    entity_type: str
    entity_id: str | None = None
    entity_name: str | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    description: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityLogListResponse(BaseModel):
    logs: list[ActivityLogResponse]
    total: int


class ActivityStatsResponse(BaseModel):
    total_logs: int
    by_date: dict[str, int]
    by_action: dict[str, int]
    by_entity: dict[str, int]


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookResponse(BaseModel):
    id: int
    url: str
    description: str | None = None
    event_types: list[str]
    is_active: bool
    created_by: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookCreatedResponse(WebhookResponse):
    """Includes the signing secret; only returned at creation."""

    secret: str


class WebhookListResponse(BaseModel):
    webhooks: list[WebhookResponse]
    total: int


class WebhookTestResponse(BaseModel):
    success: bool
    status_code: int | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Salesforce
# ---------------------------------------------------------------------------


class SalesforceStatusResponse(BaseModel):
    connected: bool
    instance_url: str | None = None
    connected_by: int | None = None
    salesforce_username: str | None = None
    salesforce_display_name: str | None = None
    salesforce_org_id: str | None = None
    last_synced_at: datetime | None = None
    connected_at: datetime | None = None


class ConnectUrlResponse(BaseModel):
    authorize_url: str
    state: str


class SalesforceConfigResponse(BaseModel):
    client_id: str
    client_secret_configured: bool
    redirect_uri: str
    auth_base_url: str
    api_version: str
    status_field: str
    allowed_statuses: str
    domain_field: str
    configured_source: str = Field(description="'database' or 'environment'")
    updated_at: datetime | None = None


class SalesforceSecretResponse(BaseModel):
    client_secret: str
    source: str


class SalesforceSyncResponse(BaseModel):
    success: bool = True
    processed_accounts: int
    matched_contacts: int
    updated_organizations: int
    blocked_organizations: int
    skipped_domains: int
    status_field: str
    domain_field: str
    allowed_statuses: list[str]


class SuccessResponse(BaseModel):
    success: bool = True


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# Trust-center content
# ---------------------------------------------------------------------------


class CertificationResponse(BaseModel):
    id: int
    name: str
    issuer: str
    issue_date: date | None = None
    expiry_date: date | None = None
    description: str | None = None
    status: CertificationStatus
    display_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CertificationListResponse(BaseModel):
    certifications: list[CertificationResponse]
    total: int


class DocumentCategoryResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class DocumentCategoryListResponse(BaseModel):
    categories: list[DocumentCategoryResponse]
    total: int


class ControlCategoryResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class ControlCategoryListResponse(BaseModel):
    categories: list[ControlCategoryResponse]
    total: int


class ControlResponse(BaseModel):
    id: int
    category_id: int
    title: str
    description: str | None = None
    sort_order: int
    category: ControlCategoryResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class ControlListResponse(BaseModel):
    controls: list[ControlResponse]
    total: int


class SecurityUpdateResponse(BaseModel):
    id: int
    title: str
    content: str
    severity: Severity | None = None
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SecurityUpdateListResponse(BaseModel):
    updates: list[SecurityUpdateResponse]
    total: int


class SubprocessorResponse(BaseModel):
    id: int
    name: str
    purpose: str
    data_location: str | None = None
    website_url: str | None = None
    category: str
    is_active: bool
    display_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubprocessorListResponse(BaseModel):
    subprocessors: list[SubprocessorResponse]
    total: int


class SettingsResponse(BaseModel):
    """Public branding. Built from defaults when no row has been saved."""

    company_name: str
    hero_title: str | None = None
    hero_subtitle: str | None = None
    primary_color: str | None = None
    secondary_color: str | None = None
    logo_url: str | None = None
    contact_email: str | None = None
    support_email: str | None = None
    social_links: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Contact tickets
# ---------------------------------------------------------------------------


class TicketMessageResponse(BaseModel):
    id: int
    sender_type: str
    sender_id: int | None = None
    sender_name: str | None = None
    message: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketResponse(BaseModel):
    id: str
    name: str
    email: str
    organization: str | None = None
    subject: str
    message: str
    status: TicketStatus
    priority: TicketPriority
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketListResponse(BaseModel):
    tickets: list[TicketResponse]
    total: int


class TicketDetailResponse(TicketResponse):
    messages: list[TicketMessageResponse] = Field(default_factory=list)


class TicketReplyResponse(BaseModel):
    success: bool = True
    message: TicketMessageResponse
    email_sent: bool
    email_error: str | None = None


class InboundEmailResponse(BaseModel):
    """Always HTTP 200 so the mail provider does not retry."""

    success: bool = False
    message: str | None = None
    ticket_id: str | None = None
    message_id: int | None = None
    error: str | None = None

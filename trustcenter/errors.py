# =============================================================================
# Domain Errors
# =============================================================================
#
# Services raise these; `trustcenter.main` renders them as
# `{"error": message, **extra}` with the matching HTTP status.
#
# Auth dependencies keep raising FastAPI's HTTPException directly, the same
# way the dependency layer always has.
# =============================================================================

from __future__ import annotations

from typing import Any


class TrustCenterError(Exception):
    """Base class. Unclassified failures map to 500."""

    status_code = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class InvalidInputError(TrustCenterError):
    status_code = 400


class ForbiddenError(TrustCenterError):
    status_code = 403


class NotFoundError(TrustCenterError):
    status_code = 404


class ConflictError(TrustCenterError):
    status_code = 409


class IntegrationError(TrustCenterError):
    """A third-party integration (Salesforce) rejected or failed a call."""

    status_code = 502


class EmailDeliveryError(TrustCenterError):
    """Raised by email providers; callers capture it into response fields."""

    status_code = 502

# =============================================================================
# Magic-Link Token Utilities
# =============================================================================
#
# A magic link is a bearer credential: anyone holding the token can read the
# documents of the request it belongs to until `magic_link_expires_at`.
#
# Expiry is strict: a link expires when `expires_at < now`, so a link checked
# at exactly its expiry instant is still valid.
# =============================================================================

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta

from trustcenter.config import settings

# 32 random bytes → 64 hex chars (256 bits), URL-safe as-is
TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def expiration_from_now(days: int | None = None, now: datetime | None = None) -> datetime:
    """Absolute expiry `days` from now (default: settings.magic_link_ttl_days)."""
    if days is None:
        days = settings.magic_link_ttl_days
    base = ensure_utc(now) if now is not None else datetime.now(UTC)
    return base + timedelta(days=days)


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """
    True when the expiry instant is strictly in the past.

    A missing expiry counts as expired: approved requests always carry one.
    """
    if expires_at is None:
        return True
    current = ensure_utc(now) if now is not None else datetime.now(UTC)
    return ensure_utc(expires_at) < current

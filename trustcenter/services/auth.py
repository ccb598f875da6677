# =============================================================================
# Auth Service — Admin Token Generation & Hashing
# =============================================================================
#
# Pure functions for admin bearer tokens. No FastAPI dependency; used by the
# auth dependency, the admin-user endpoints, the seed script, and tests.
#
# DESIGN DECISION: SHA-256 hashing (not bcrypt). Tokens are 32-byte random
# values; rows are looked up directly by hash.
# =============================================================================

from __future__ import annotations

import hashlib
import secrets

TOKEN_PREFIX = "tca-"


def generate_admin_token() -> tuple[str, str, str]:
    """
    Generate a new admin token.

    Returns:
        (raw_token, token_prefix, token_hash):
        - raw_token: full token, shown to the admin once
        - token_prefix: first 10 chars, for identification in logs/admin UI
        - token_hash: SHA-256 hex digest stored in admin_users
    """
    raw_token = f"{TOKEN_PREFIX}{secrets.token_hex(32)}"
    return raw_token, raw_token[:10], hash_token(raw_token)


def hash_token(raw_token: str) -> str:
    """Hash a token using SHA-256. Returns 64-char hex digest."""
    return hashlib.sha256(raw_token.encode()).hexdigest()

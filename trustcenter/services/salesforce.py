# =============================================================================
# Salesforce Integration — OAuth 2.0 + PKCE, Account Sync
# =============================================================================
#
# Lets an admin connect a Salesforce org and mirror customer status onto
# Trust Center organizations: accounts whose status field is in the allowed
# list become `whitelisted` (auto-approve everything); all others become
# `no_access`.
#
# CONNECT FLOW:
#   1. GET /salesforce/connect-url
#        state = base64url(JSON{nonce, ts, admin_id}) + "." + hex(HMAC-SHA256)
#        PKCE verifier (64 random bytes, base64url) stored in-process under
#        `state` for 15 minutes; S256 challenge goes in the authorize URL
#   2. Salesforce redirects to GET /salesforce/callback?code&state
#        state signature + age checked, verifier consumed (single use),
#        code exchanged for tokens, one active connection kept
#
# DESIGN DECISION: The PKCE verifier map is process-local. A multi-instance
# deployment must pin the callback to the instance that issued the URL or
# move the map to a shared store with TTL.
#
# CONFIG: The integration_settings row (provider="salesforce") wins field by
# field over SALESFORCE_* settings. The client secret is stored encrypted:
#   "enc:v1:" + base64url(iv) + "." + base64url(tag) + "." + base64url(ct)
# with AES-256-GCM, key = SHA-256(settings.state_secret).
#
# API CALLS: httpx.AsyncClient. A 401 triggers one refresh-token grant and a
# single retry. Query results follow `nextRecordsUrl` pagination.
# =============================================================================

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import re
import secrets
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote, urlencode, urlparse

import httpx
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.config import settings
from trustcenter.db.models import (
    IntegrationSetting,
    OrganizationStatus,
    SalesforceConnection,
)
from trustcenter.errors import IntegrationError, InvalidInputError
from trustcenter.services.organizations import (
    get_or_create_organization,
    is_personal_domain,
)

logger = logging.getLogger(__name__)

PROVIDER = "salesforce"
PKCE_TTL_SECONDS = 15 * 60
STATE_MAX_AGE_SECONDS = 15 * 60
OAUTH_SCOPE = "api refresh_token offline_access"
ENC_PREFIX = "enc:v1:"

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(?:__c)?$")

STATUS_FIELD_TYPES = ("picklist", "string", "textarea", "combobox")
DOMAIN_FIELD_TYPES = ("url", "string", "textarea", "email")


# ---------------------------------------------------------------------------
# base64url helpers (unpadded, RFC 4648 §5)
# ---------------------------------------------------------------------------


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


# ---------------------------------------------------------------------------
# PKCE verifier store
# ---------------------------------------------------------------------------


class PkceVerifierStore:
    """In-memory state → verifier map with TTL and lazy sweep."""

    def __init__(
        self,
        ttl_seconds: int = PKCE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def create_challenge(self, state: str) -> tuple[str, str]:
        """Store a fresh verifier under `state`; return (challenge, "S256")."""
        self._sweep()
        verifier = _b64url_encode(secrets.token_bytes(64))
        self._entries[state] = (verifier, self._clock() + self.ttl_seconds)
        challenge = _b64url_encode(hashlib.sha256(verifier.encode()).digest())
        return challenge, "S256"

    def consume(self, state: str) -> str | None:
        """Return and forget the verifier; None if unknown or expired."""
        self._sweep()
        entry = self._entries.pop(state, None)
        if entry is None:
            return None
        verifier, expires_at = entry
        if expires_at <= self._clock():
            return None
        return verifier


pkce_store = PkceVerifierStore()


# ---------------------------------------------------------------------------
# Signed OAuth state
# ---------------------------------------------------------------------------


def _sign(payload: str) -> str:
    return hmac.new(settings.state_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def generate_oauth_state(admin_id: int, now: float | None = None) -> str:
    payload = json.dumps(
        {
            "nonce": secrets.token_hex(16),
            "ts": int((now if now is not None else time.time()) * 1000),
            "admin_id": admin_id,
        },
        separators=(",", ":"),
    )
    return f"{_b64url_encode(payload.encode())}.{_sign(payload)}"


def validate_oauth_state(state: str, now: float | None = None) -> int | None:
    """Admin id carried by a genuine, fresh state; otherwise None."""
    encoded, _, signature = state.partition(".")
    if not encoded or not signature:
        return None
    try:
        payload = _b64url_decode(encoded).decode()
    except (ValueError, UnicodeDecodeError):
        return None

    if not hmac.compare_digest(signature, _sign(payload)):
        return None

    try:
        parsed = json.loads(payload)
    except ValueError:
        return None
    ts = parsed.get("ts")
    admin_id = parsed.get("admin_id")
    if not isinstance(ts, int) or not isinstance(admin_id, int):
        return None
    current_ms = (now if now is not None else time.time()) * 1000
    if current_ms - ts > STATE_MAX_AGE_SECONDS * 1000:
        return None
    return admin_id


# ---------------------------------------------------------------------------
# Secret encryption (AES-256-GCM)
# ---------------------------------------------------------------------------


def _cipher_key() -> bytes:
    return hashlib.sha256(settings.state_secret.encode()).digest()


def encrypt_secret(value: str) -> str:
    iv = secrets.token_bytes(12)
    sealed = AESGCM(_cipher_key()).encrypt(iv, value.encode(), None)
    ciphertext, tag = sealed[:-16], sealed[-16:]
    return f"{ENC_PREFIX}{_b64url_encode(iv)}.{_b64url_encode(tag)}.{_b64url_encode(ciphertext)}"


def decrypt_secret(value: str | None) -> str:
    """Decrypt an `enc:v1:` value; plain values pass through unchanged."""
    if not value:
        return ""
    if not value.startswith(ENC_PREFIX):
        return value
    parts = value[len(ENC_PREFIX):].split(".")
    if len(parts) != 3 or not all(parts):
        raise IntegrationError("Stored Salesforce secret is malformed")
    iv, tag, ciphertext = (_b64url_decode(p) for p in parts)
    try:
        plain = AESGCM(_cipher_key()).decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        raise IntegrationError("Stored Salesforce secret could not be decrypted") from None
    return plain.decode()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class SalesforceConfig:
    client_id: str
    client_secret: str
    redirect_uri: str
    auth_base_url: str
    api_version: str
    status_field: str
    allowed_statuses: str
    domain_field: str


def _env_config() -> dict[str, str]:
    return {
        "client_id": settings.salesforce_client_id,
        "client_secret": settings.salesforce_client_secret,
        "redirect_uri": settings.salesforce_redirect_uri,
        "auth_base_url": settings.salesforce_auth_base_url,
        "api_version": settings.salesforce_api_version,
        "status_field": settings.salesforce_status_field,
        "allowed_statuses": settings.salesforce_allowed_statuses,
        "domain_field": settings.salesforce_domain_field,
    }


_DEFAULTS = {
    "auth_base_url": "https://login.salesforce.com",
    "api_version": "v59.0",
    "status_field": "Type",
    "allowed_statuses": "Customer,Active Customer",
    "domain_field": "Website",
}

_PLAIN_FIELDS = (
    "client_id",
    "redirect_uri",
    "auth_base_url",
    "api_version",
    "status_field",
    "allowed_statuses",
    "domain_field",
)


async def get_stored_setting(session: AsyncSession) -> IntegrationSetting | None:
    result = await session.execute(
        select(IntegrationSetting).where(IntegrationSetting.provider == PROVIDER)
    )
    return result.scalar_one_or_none()


def _merge(stored: dict[str, Any]) -> dict[str, str]:
    env = _env_config()
    merged = {
        key: str(stored.get(key) or env.get(key) or _DEFAULTS.get(key, ""))
        for key in _PLAIN_FIELDS
    }
    merged["client_secret"] = (
        decrypt_secret(stored.get("client_secret_encrypted")) or env["client_secret"]
    )
    return merged


async def load_config(session: AsyncSession) -> SalesforceConfig:
    """Effective config; raises InvalidInputError naming missing settings."""
    stored = await get_stored_setting(session)
    merged = _merge(stored.config if stored else {})

    missing = [
        env_name
        for key, env_name in (
            ("client_id", "SALESFORCE_CLIENT_ID"),
            ("client_secret", "SALESFORCE_CLIENT_SECRET"),
            ("redirect_uri", "SALESFORCE_REDIRECT_URI"),
        )
        if not merged[key]
    ]
    if missing:
        raise InvalidInputError(f"Missing Salesforce config: {', '.join(missing)}")
    return SalesforceConfig(**merged)


async def admin_config_view(session: AsyncSession) -> dict[str, Any]:
    """Config as shown to admins: no secret, only whether one is set."""
    stored = await get_stored_setting(session)
    merged = _merge(stored.config if stored else {})
    return {
        "client_id": merged["client_id"],
        "client_secret_configured": bool(merged["client_secret"]),
        "redirect_uri": merged["redirect_uri"],
        "auth_base_url": merged["auth_base_url"],
        "api_version": merged["api_version"],
        "status_field": merged["status_field"],
        "allowed_statuses": merged["allowed_statuses"],
        "domain_field": merged["domain_field"],
        "configured_source": "database" if stored else "environment",
        "updated_at": stored.updated_at if stored else None,
    }


async def reveal_client_secret(session: AsyncSession) -> dict[str, str]:
    stored = await get_stored_setting(session)
    stored_secret = decrypt_secret((stored.config if stored else {}).get("client_secret_encrypted"))
    secret = stored_secret or settings.salesforce_client_secret
    if not secret:
        raise InvalidInputError("No Salesforce client secret configured")
    return {
        "client_secret": secret,
        "source": "database" if stored_secret else "environment",
    }


async def save_config(
    session: AsyncSession, values: dict[str, Any], admin_id: int | None
) -> dict[str, Any]:
    """
    Upsert the stored config. Blank fields keep their previous value; a new
    client secret is encrypted before it is stored.
    """
    stored = await get_stored_setting(session)
    existing = dict(stored.config) if stored else {}
    env = _env_config()

    config: dict[str, Any] = {}
    for key in _PLAIN_FIELDS:
        candidate = (values.get(key) or "").strip()
        config[key] = candidate or existing.get(key) or env.get(key) or _DEFAULTS.get(key, "")

    secret_input = (values.get("client_secret") or "").strip()
    encrypted = existing.get("client_secret_encrypted") or ""
    if secret_input:
        encrypted = encrypt_secret(secret_input)
    elif not encrypted and env["client_secret"]:
        encrypted = encrypt_secret(env["client_secret"])
    config["client_secret_encrypted"] = encrypted

    if not config["client_id"] or not config["redirect_uri"] or not encrypted:
        raise InvalidInputError(
            "Salesforce config requires client ID, client secret, and redirect URI"
        )

    if stored is None:
        stored = IntegrationSetting(provider=PROVIDER, config=config, updated_by=admin_id)
        session.add(stored)
    else:
        stored.config = config
        stored.updated_by = admin_id
    await session.flush()
    logger.info("Salesforce config saved by admin %s", admin_id)
    return await admin_config_view(session)


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


def authorize_url(config: SalesforceConfig, state: str, code_challenge: str) -> str:
    params = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "scope": OAUTH_SCOPE,
        "prompt": "consent",
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{config.auth_base_url.rstrip('/')}/services/oauth2/authorize?{urlencode(params)}"


@asynccontextmanager
async def _http(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=30.0) as owned:
        yield owned


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"{fallback} (HTTP {response.status_code})"
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        return payload[0].get("message") or fallback
    if isinstance(payload, dict):
        return payload.get("error_description") or payload.get("error") or payload.get("message") or fallback
    return fallback


async def get_active_connection(session: AsyncSession) -> SalesforceConnection | None:
    result = await session.execute(
        select(SalesforceConnection)
        .where(SalesforceConnection.is_active.is_(True))
        .order_by(SalesforceConnection.updated_at.desc(), SalesforceConnection.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _deactivate_all(session: AsyncSession) -> None:
    await session.execute(
        update(SalesforceConnection)
        .where(SalesforceConnection.is_active.is_(True))
        .values(is_active=False)
    )


async def _fetch_identity(
    http: httpx.AsyncClient, payload: dict[str, Any]
) -> dict[str, Any]:
    """Best-effort lookup of the connecting Salesforce user."""
    identity_url = payload.get("id")
    if not identity_url:
        return {}
    try:
        response = await http.get(
            identity_url,
            headers={"Authorization": f"Bearer {payload['access_token']}"},
        )
    except httpx.HTTPError as e:
        logger.warning("Salesforce identity lookup failed: %s", e)
        return {}
    if response.is_error:
        return {}
    return response.json()


async def exchange_code_and_store(
    session: AsyncSession,
    code: str,
    admin_id: int,
    code_verifier: str | None,
    client: httpx.AsyncClient | None = None,
) -> SalesforceConnection:
    config = await load_config(session)
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "redirect_uri": config.redirect_uri,
    }
    if code_verifier:
        form["code_verifier"] = code_verifier

    async with _http(client) as http:
        response = await http.post(
            f"{config.auth_base_url.rstrip('/')}/services/oauth2/token", data=form
        )
        if response.is_error:
            raise IntegrationError(_error_message(response, "Salesforce token exchange failed"))
        payload = response.json()
        if not payload.get("access_token") or not payload.get("instance_url"):
            raise IntegrationError("Salesforce token response missing required fields")
        if not payload.get("refresh_token"):
            raise IntegrationError(
                "Salesforce refresh token missing. Ensure the Connected App allows "
                "refresh_token and prompt=consent was used."
            )
        identity = await _fetch_identity(http, payload)

    await _deactivate_all(session)
    connection = SalesforceConnection(
        instance_url=payload["instance_url"],
        access_token=payload["access_token"],
        refresh_token=payload["refresh_token"],
        token_type=payload.get("token_type") or "Bearer",
        scope=payload.get("scope"),
        issued_at=datetime.now(UTC),
        salesforce_user_id=identity.get("user_id"),
        salesforce_username=identity.get("username"),
        salesforce_display_name=identity.get("display_name"),
        salesforce_org_id=identity.get("organization_id"),
        connected_by=admin_id,
        is_active=True,
    )
    session.add(connection)
    await session.flush()
    logger.info("Salesforce connected by admin %s (%s)", admin_id, connection.instance_url)
    return connection


async def disconnect(session: AsyncSession) -> None:
    await _deactivate_all(session)
    await session.flush()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


class SalesforceClient:
    """REST calls against the active connection, refreshing once on 401."""

    def __init__(
        self,
        session: AsyncSession,
        config: SalesforceConfig,
        connection: SalesforceConnection,
        http: httpx.AsyncClient,
    ) -> None:
        self.session = session
        self.config = config
        self.connection = connection
        self.http = http
        self._refreshed = False

    def _auth_header(self) -> dict[str, str]:
        token_type = self.connection.token_type or "Bearer"
        return {"Authorization": f"{token_type} {self.connection.access_token}"}

    async def refresh_access_token(self) -> None:
        response = await self._send(
            "POST",
            f"{self.config.auth_base_url.rstrip('/')}/services/oauth2/token",
            data={
                "grant_type": "refresh_token",
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "refresh_token": self.connection.refresh_token,
            },
        )
        payload = response.json() if not response.is_error else {}
        if response.is_error or not payload.get("access_token"):
            raise IntegrationError(_error_message(response, "Salesforce token refresh failed"))

        self.connection.access_token = payload["access_token"]
        self.connection.instance_url = payload.get("instance_url") or self.connection.instance_url
        self.connection.token_type = payload.get("token_type") or self.connection.token_type
        self.connection.issued_at = datetime.now(UTC)
        await self.session.flush()
        logger.info("Salesforce access token refreshed for connection %d", self.connection.id)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise IntegrationError(f"Salesforce request failed: {e}") from e

    async def _get(self, url: str) -> httpx.Response:
        response = await self._send("GET", url, headers=self._auth_header())
        if response.status_code == 401 and not self._refreshed:
            self._refreshed = True
            await self.refresh_access_token()
            response = await self._send("GET", url, headers=self._auth_header())
        return response

    def _data_url(self, path: str) -> str:
        return f"{self.connection.instance_url}/services/data/{self.config.api_version}{path}"

    async def query(self, soql: str) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        next_url: str | None = self._data_url(f"/query?q={quote(soql)}")
        while next_url:
            response = await self._get(next_url)
            if response.is_error:
                raise IntegrationError(_error_message(response, "Salesforce query failed"))
            payload = response.json()
            records.extend(payload.get("records") or [])
            next_path = payload.get("nextRecordsUrl")
            next_url = f"{self.connection.instance_url}{next_path}" if next_path else None
        return records

    async def get_json(self, path: str) -> Any:
        response = await self._get(self._data_url(path))
        if response.is_error:
            raise IntegrationError(_error_message(response, "Salesforce request failed"))
        return response.json()


async def _client_for_active_connection(
    session: AsyncSession, http: httpx.AsyncClient
) -> SalesforceClient:
    connection = await get_active_connection(session)
    if connection is None:
        raise InvalidInputError("No active Salesforce connection found")
    config = await load_config(session)
    return SalesforceClient(session, config, connection, http)


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


def validate_field_name(field: str | None, fallback: str) -> str:
    return field if field and _FIELD_NAME.match(field) else fallback


def parse_allowed_statuses(raw: str) -> list[str]:
    return [s.strip().lower() for s in raw.split(",") if s.strip()]


def domain_from_email(email: str | None) -> str | None:
    if not email or "@" not in email:
        return None
    parts = email.split("@")
    if len(parts) != 2:
        return None
    domain = parts[1].strip().lower()
    if not domain or is_personal_domain(domain):
        return None
    return domain


def domain_from_website(website: str | None) -> str | None:
    if not website or not website.strip():
        return None
    value = website.strip()
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    try:
        host = (urlparse(value).hostname or "").lower()
    except ValueError:
        return None
    host = host.removeprefix("www.")
    if not host or is_personal_domain(host):
        return None
    return host


async def sync_organizations(
    session: AsyncSession, client: httpx.AsyncClient | None = None
) -> dict[str, Any]:
    """
    Rewrite organization status from Salesforce accounts.

    Each account's domains (website + contact email domains, personal
    providers excluded) map to an organization, created if missing.
    """
    async with _http(client) as http:
        sf = await _client_for_active_connection(session, http)
        status_field = validate_field_name(sf.config.status_field, "Type")
        domain_field = validate_field_name(sf.config.domain_field, "Website")
        allowed = parse_allowed_statuses(sf.config.allowed_statuses)

        accounts = await sf.query(f"SELECT Id, Name, {domain_field}, {status_field} FROM Account")
        contacts = await sf.query("SELECT Id, AccountId, Email FROM Contact WHERE Email != NULL")

    contacts_by_account: dict[str, list[dict[str, Any]]] = {}
    for contact in contacts:
        account_id = contact.get("AccountId")
        if account_id:
            contacts_by_account.setdefault(account_id, []).append(contact)

    now = datetime.now(UTC)
    processed = updated = blocked = skipped = 0
    for account in accounts:
        processed += 1
        domains: list[str] = []
        website_domain = domain_from_website(account.get(domain_field))
        if website_domain:
            domains.append(website_domain)
        for contact in contacts_by_account.get(account.get("Id"), []):
            email_domain = domain_from_email(contact.get("Email"))
            if email_domain and email_domain not in domains:
                domains.append(email_domain)

        if not domains:
            skipped += 1
            continue

        status_value = account.get(status_field)
        grant = isinstance(status_value, str) and status_value.strip().lower() in allowed

        for domain in domains:
            org = await get_or_create_organization(session, domain, account.get("Name"))
            org.name = account.get("Name") or domain
            org.status = OrganizationStatus.WHITELISTED if grant else OrganizationStatus.NO_ACCESS
            org.is_active = True
            org.revoked_at = None if grant else now
            org.last_synced_at = now
            updated += 1
            if not grant:
                blocked += 1

    sf.connection.last_synced_at = now
    await session.flush()

    summary = {
        "processed_accounts": processed,
        "matched_contacts": len(contacts),
        "updated_organizations": updated,
        "blocked_organizations": blocked,
        "skipped_domains": skipped,
        "status_field": status_field,
        "domain_field": domain_field,
        "allowed_statuses": allowed,
    }
    logger.info("Salesforce sync complete: %s", summary)
    return summary


async def account_field_metadata(
    session: AsyncSession, client: httpx.AsyncClient | None = None
) -> dict[str, Any]:
    """Account fields, plus which ones can serve as status / domain source."""
    async with _http(client) as http:
        sf = await _client_for_active_connection(session, http)
        describe = await sf.get_json("/sobjects/Account/describe")

    fields = []
    for raw in describe.get("fields") or []:
        name = raw.get("name")
        if not isinstance(name, str):
            continue
        fields.append(
            {
                "name": name,
                "label": raw.get("label") if isinstance(raw.get("label"), str) else name,
                "type": raw.get("type") if isinstance(raw.get("type"), str) else "string",
                "picklist_values": [
                    p["value"]
                    for p in raw.get("picklistValues") or []
                    if p.get("active") is not False and isinstance(p.get("value"), str)
                ],
            }
        )
    return {
        "object": "Account",
        "fields": fields,
        "status_field_candidates": [f for f in fields if f["type"] in STATUS_FIELD_TYPES],
        "domain_field_candidates": [f for f in fields if f["type"] in DOMAIN_FIELD_TYPES],
    }


async def connection_status(session: AsyncSession) -> dict[str, Any]:
    connection = await get_active_connection(session)
    if connection is None:
        return {"connected": False}
    return {
        "connected": True,
        "instance_url": connection.instance_url,
        "connected_by": connection.connected_by,
        "salesforce_username": connection.salesforce_username,
        "salesforce_display_name": connection.salesforce_display_name,
        "salesforce_org_id": connection.salesforce_org_id,
        "last_synced_at": connection.last_synced_at,
        "connected_at": connection.created_at,
    }

# =============================================================================
# Tests — Salesforce Integration
# =============================================================================
#
# Salesforce itself is simulated with httpx.MockTransport.
#
# Test groups:
#   1. PKCE verifier store (fake clock)
#   2. Signed OAuth state
#   3. Client secret encryption
#   4. Stored config (save / load / reveal)
#   5. OAuth code exchange
#   6. Organization sync (pagination, token refresh, status mapping)
#   7. Account field metadata
#   8. Scheduled sync task
# =============================================================================

from __future__ import annotations

import base64
import hashlib
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import select

from trustcenter.db.models import Organization, OrganizationStatus, SalesforceConnection
from trustcenter.errors import IntegrationError, InvalidInputError
from trustcenter.services import salesforce
from trustcenter.services.salesforce import (
    ENC_PREFIX,
    PkceVerifierStore,
    decrypt_secret,
    domain_from_email,
    domain_from_website,
    encrypt_secret,
    generate_oauth_state,
    parse_allowed_statuses,
    validate_field_name,
    validate_oauth_state,
)

INSTANCE = "https://acme.my.salesforce.com"
TOKEN_URL = "https://login.salesforce.com/services/oauth2/token"


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
async def configured(session):
    """Stored integration config with an encrypted secret."""
    await salesforce.save_config(
        session,
        {
            "client_id": "3MVG-client",
            "client_secret": "sf-secret",
            "redirect_uri": "https://api.trust.test/api/salesforce/callback",
        },
        admin_id=None,
    )
    await session.commit()


@pytest.fixture
async def connection(session, configured):
    conn = SalesforceConnection(
        instance_url=INSTANCE,
        access_token="old-token",
        refresh_token="refresh-1",
        token_type="Bearer",
        is_active=True,
    )
    session.add(conn)
    await session.commit()
    return conn


# ---------------------------------------------------------------------------
# 1. PKCE
# ---------------------------------------------------------------------------


class TestPkceVerifierStore:
    """One-shot verifiers with a TTL."""

    def test_challenge_is_s256_of_verifier(self):
        store = PkceVerifierStore(clock=FakeClock())
        challenge, method = store.create_challenge("state-1")
        verifier = store.consume("state-1")

        digest = hashlib.sha256(verifier.encode()).digest()
        assert method == "S256"
        assert challenge == base64.urlsafe_b64encode(digest).rstrip(b"=").decode()
        assert "=" not in verifier

    def test_consume_is_single_use(self):
        store = PkceVerifierStore(clock=FakeClock())
        store.create_challenge("state-1")
        assert store.consume("state-1") is not None
        assert store.consume("state-1") is None

    def test_unknown_state(self):
        assert PkceVerifierStore(clock=FakeClock()).consume("nope") is None

    def test_expired_verifier_is_gone(self):
        clock = FakeClock()
        store = PkceVerifierStore(ttl_seconds=900, clock=clock)
        store.create_challenge("state-1")

        clock.now += 900
        assert store.consume("state-1") is None

    def test_sweep_drops_stale_entries(self):
        clock = FakeClock()
        store = PkceVerifierStore(ttl_seconds=60, clock=clock)
        store.create_challenge("old")
        clock.now += 61
        store.create_challenge("new")
        assert len(store) == 1


# ---------------------------------------------------------------------------
# 2. OAuth state
# ---------------------------------------------------------------------------


class TestOAuthState:
    """HMAC-signed, time-limited state carrying the admin id."""

    def test_round_trip(self):
        state = generate_oauth_state(42, now=1_700_000_000)
        assert validate_oauth_state(state, now=1_700_000_000 + 60) == 42

    def test_expired_after_fifteen_minutes(self):
        state = generate_oauth_state(42, now=1_700_000_000)
        assert validate_oauth_state(state, now=1_700_000_000 + 901) is None

    def test_tampered_payload(self):
        state = generate_oauth_state(42, now=1_700_000_000)
        encoded, signature = state.split(".")
        forged = base64.urlsafe_b64encode(
            b'{"nonce":"x","ts":1700000000000,"admin_id":1}'
        ).rstrip(b"=").decode()
        assert validate_oauth_state(f"{forged}.{signature}", now=1_700_000_000) is None

    @pytest.mark.parametrize("state", ["", "no-dot", ".sig", "abc.", "!!!.deadbeef"])
    def test_garbage(self, state):
        assert validate_oauth_state(state) is None

    def test_signed_with_another_secret(self, monkeypatch):
        from trustcenter.config import settings

        state = generate_oauth_state(42, now=1_700_000_000)
        monkeypatch.setattr(settings, "state_secret", "rotated")
        assert validate_oauth_state(state, now=1_700_000_000) is None


# ---------------------------------------------------------------------------
# 3. Encryption
# ---------------------------------------------------------------------------


class TestSecretEncryption:
    """AES-256-GCM with a key derived from STATE_SECRET."""

    def test_round_trip_and_format(self):
        sealed = encrypt_secret("sf-secret")
        assert sealed.startswith(ENC_PREFIX)
        assert len(sealed[len(ENC_PREFIX):].split(".")) == 3
        assert decrypt_secret(sealed) == "sf-secret"

    def test_fresh_iv_each_time(self):
        assert encrypt_secret("same") != encrypt_secret("same")

    def test_plain_values_pass_through(self):
        assert decrypt_secret("legacy-plain") == "legacy-plain"
        assert decrypt_secret(None) == ""

    def test_tampered_ciphertext(self):
        iv, tag, ciphertext = encrypt_secret("sf-secret")[len(ENC_PREFIX):].split(".")
        flipped = ("A" if ciphertext[0] != "A" else "B") + ciphertext[1:]
        with pytest.raises(IntegrationError):
            decrypt_secret(f"{ENC_PREFIX}{iv}.{tag}.{flipped}")

    def test_malformed(self):
        with pytest.raises(IntegrationError):
            decrypt_secret(f"{ENC_PREFIX}only-one-part")

    def test_wrong_key(self, monkeypatch):
        from trustcenter.config import settings

        sealed = encrypt_secret("sf-secret")
        monkeypatch.setattr(settings, "state_secret", "rotated")
        with pytest.raises(IntegrationError):
            decrypt_secret(sealed)


# ---------------------------------------------------------------------------
# 4. Config
# ---------------------------------------------------------------------------


class TestConfig:
    """Stored config wins over env; the secret is never stored in clear."""

    async def test_missing_config_names_settings(self, session):
        with pytest.raises(InvalidInputError) as exc_info:
            await salesforce.load_config(session)
        assert exc_info.value.message == (
            "Missing Salesforce config: SALESFORCE_CLIENT_ID, "
            "SALESFORCE_CLIENT_SECRET, SALESFORCE_REDIRECT_URI"
        )

    async def test_save_encrypts_secret(self, session, configured):
        stored = await salesforce.get_stored_setting(session)
        assert stored.config["client_secret_encrypted"].startswith(ENC_PREFIX)
        assert "sf-secret" not in str(stored.config)

        config = await salesforce.load_config(session)
        assert config.client_secret == "sf-secret"
        assert config.client_id == "3MVG-client"
        assert config.status_field == "Type"
        assert config.api_version == "v59.0"

    async def test_blank_fields_keep_previous_values(self, session, configured):
        view = await salesforce.save_config(
            session, {"client_secret": "", "status_field": "Customer_Tier__c"}, admin_id=None
        )
        config = await salesforce.load_config(session)

        assert config.client_secret == "sf-secret"
        assert config.client_id == "3MVG-client"
        assert config.status_field == "Customer_Tier__c"
        assert view["client_secret_configured"] is True
        assert view["configured_source"] == "database"
        assert "client_secret" not in view

    async def test_save_requires_credentials(self, session):
        with pytest.raises(InvalidInputError):
            await salesforce.save_config(session, {"client_id": "abc"}, admin_id=None)

    async def test_reveal_secret(self, session, configured):
        assert await salesforce.reveal_client_secret(session) == {
            "client_secret": "sf-secret",
            "source": "database",
        }

    async def test_reveal_without_secret(self, session):
        with pytest.raises(InvalidInputError):
            await salesforce.reveal_client_secret(session)

    async def test_authorize_url(self, session, configured):
        config = await salesforce.load_config(session)
        url = salesforce.authorize_url(config, "st4te", "ch4llenge")

        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert parsed.netloc == "login.salesforce.com"
        assert parsed.path == "/services/oauth2/authorize"
        assert params["client_id"] == ["3MVG-client"]
        assert params["scope"] == ["api refresh_token offline_access"]
        assert params["prompt"] == ["consent"]
        assert params["code_challenge_method"] == ["S256"]
        assert params["state"] == ["st4te"]


# ---------------------------------------------------------------------------
# 5. Code exchange
# ---------------------------------------------------------------------------


def _token_payload(**overrides):
    payload = {
        "access_token": "at-1",
        "refresh_token": "rt-1",
        "instance_url": INSTANCE,
        "id": "https://login.salesforce.com/id/00D000/005000",
        "token_type": "Bearer",
        "scope": "api refresh_token",
    }
    payload.update(overrides)
    return payload


class TestExchangeCode:
    """Authorization code → stored connection."""

    async def test_stores_connection_with_identity(self, session, configured, admin):
        forms: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url == TOKEN_URL:
                forms.append(parse_qs(request.content.decode()))
                return httpx.Response(200, json=_token_payload())
            assert request.headers["Authorization"] == "Bearer at-1"
            return httpx.Response(200, json={
                "user_id": "005000",
                "username": "ada@acme.io",
                "display_name": "Ada Admin",
                "organization_id": "00D000",
            })

        async with _mock_client(handler) as client:
            conn = await salesforce.exchange_code_and_store(
                session, "auth-code", admin.user.id, "verifier-1", client=client
            )

        [form] = forms
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        assert form["client_secret"] == ["sf-secret"]
        assert form["code_verifier"] == ["verifier-1"]
        assert conn.is_active
        assert conn.refresh_token == "rt-1"
        assert conn.salesforce_username == "ada@acme.io"
        assert conn.connected_by == admin.user.id

    async def test_reconnect_deactivates_previous(self, session, connection, admin):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_token_payload(id=None))

        async with _mock_client(handler) as client:
            new = await salesforce.exchange_code_and_store(
                session, "code", admin.user.id, None, client=client
            )
        await session.commit()

        await session.refresh(connection)
        assert connection.is_active is False
        assert (await salesforce.get_active_connection(session)).id == new.id

    async def test_missing_refresh_token(self, session, configured, admin):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_token_payload(refresh_token=None))

        async with _mock_client(handler) as client:
            with pytest.raises(IntegrationError) as exc_info:
                await salesforce.exchange_code_and_store(
                    session, "code", admin.user.id, None, client=client
                )
        assert "refresh token missing" in exc_info.value.message

    async def test_salesforce_error_description_is_surfaced(self, session, configured, admin):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "expired authorization code"}
            )

        async with _mock_client(handler) as client:
            with pytest.raises(IntegrationError) as exc_info:
                await salesforce.exchange_code_and_store(
                    session, "code", admin.user.id, None, client=client
                )
        assert exc_info.value.message == "expired authorization code"


# ---------------------------------------------------------------------------
# 6. Sync
# ---------------------------------------------------------------------------


class TestSyncHelpers:
    """Domain extraction and field validation."""

    @pytest.mark.parametrize(
        "website, expected",
        [
            ("https://www.acme.io/about", "acme.io"),
            ("acme.io", "acme.io"),
            ("HTTP://Globex.COM", "globex.com"),
            ("", None),
            (None, None),
            ("gmail.com", None),
        ],
    )
    def test_domain_from_website(self, website, expected):
        assert domain_from_website(website) == expected

    def test_domain_from_email(self):
        assert domain_from_email("Bill@Initech.com") == "initech.com"
        assert domain_from_email("someone@gmail.com") is None
        assert domain_from_email("broken") is None

    def test_field_names_are_validated(self):
        assert validate_field_name("Customer_Tier__c", "Type") == "Customer_Tier__c"
        assert validate_field_name("Type; DELETE", "Type") == "Type"
        assert validate_field_name(None, "Website") == "Website"

    def test_allowed_statuses_are_normalized(self):
        assert parse_allowed_statuses(" Customer, Active Customer ,,") == [
            "customer",
            "active customer",
        ]


ACCOUNTS_PAGE_1 = {
    "records": [
        {"Id": "001A", "Name": "Acme Corp", "Website": "https://www.acme.io", "Type": "Customer"},
        {"Id": "001B", "Name": "Globex", "Website": "globex.com", "Type": "Prospect"},
    ],
    "nextRecordsUrl": "/services/data/v59.0/query/01gNEXT-2000",
}
ACCOUNTS_PAGE_2 = {
    "records": [
        {"Id": "001C", "Name": "No Site", "Website": None, "Type": "Customer"},
        {"Id": "001D", "Name": "Initech", "Website": None, "Type": "Active Customer"},
    ],
}
CONTACTS = {
    "records": [
        {"Id": "003A", "AccountId": "001A", "Email": "jane@acme-mail.io"},
        {"Id": "003B", "AccountId": "001D", "Email": "bill@initech.com"},
        {"Id": "003C", "AccountId": "001D", "Email": "bill.personal@gmail.com"},
    ],
}


def _salesforce_api(expired_token: str | None = None):
    """Handler simulating query, pagination and token refresh."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url == TOKEN_URL:
            form = parse_qs(request.content.decode())
            assert form["grant_type"] == ["refresh_token"]
            assert form["refresh_token"] == ["refresh-1"]
            return httpx.Response(200, json={"access_token": "new-token", "instance_url": INSTANCE})

        if expired_token and request.headers["Authorization"] == f"Bearer {expired_token}":
            return httpx.Response(401, json=[{"message": "Session expired", "errorCode": "INVALID_SESSION_ID"}])

        if request.url.path.endswith("/query/01gNEXT-2000"):
            return httpx.Response(200, json=ACCOUNTS_PAGE_2)
        soql = request.url.params.get("q", "")
        if "FROM Account" in soql:
            return httpx.Response(200, json=ACCOUNTS_PAGE_1)
        if "FROM Contact" in soql:
            return httpx.Response(200, json=CONTACTS)
        return httpx.Response(404, json=[{"message": "not found"}])

    return handler, seen


class TestSyncOrganizations:
    """Accounts + contacts → organization status."""

    async def test_requires_active_connection(self, session, configured):
        with pytest.raises(InvalidInputError) as exc_info:
            await salesforce.sync_organizations(session)
        assert exc_info.value.message == "No active Salesforce connection found"

    async def test_sync_maps_statuses(self, session, connection, make_org):
        globex = await make_org("globex.com", status=OrganizationStatus.WHITELISTED)
        handler, _ = _salesforce_api()

        async with _mock_client(handler) as client:
            summary = await salesforce.sync_organizations(session, client=client)
        await session.commit()

        assert summary["processed_accounts"] == 4
        assert summary["matched_contacts"] == 3
        assert summary["updated_organizations"] == 4
        assert summary["blocked_organizations"] == 1
        assert summary["skipped_domains"] == 1
        assert summary["allowed_statuses"] == ["customer", "active customer"]

        orgs = {
            o.email_domain: o
            for o in (await session.execute(select(Organization))).scalars().all()
        }
        assert set(orgs) == {"acme.io", "acme-mail.io", "globex.com", "initech.com"}
        assert orgs["acme.io"].status == OrganizationStatus.WHITELISTED
        assert orgs["acme.io"].name == "Acme Corp"
        assert orgs["acme-mail.io"].status == OrganizationStatus.WHITELISTED
        assert orgs["initech.com"].status == OrganizationStatus.WHITELISTED

        await session.refresh(globex)
        assert globex.status == OrganizationStatus.NO_ACCESS
        assert globex.revoked_at is not None
        assert globex.last_synced_at is not None

        await session.refresh(connection)
        assert connection.last_synced_at is not None

    async def test_expired_token_is_refreshed_once(self, session, connection):
        handler, seen = _salesforce_api(expired_token="old-token")

        async with _mock_client(handler) as client:
            summary = await salesforce.sync_organizations(session, client=client)

        assert summary["processed_accounts"] == 4
        assert sum(1 for r in seen if r.url == TOKEN_URL) == 1
        assert connection.access_token == "new-token"

    async def test_query_error_is_integration_error(self, session, connection):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json=[{"message": "No such column 'Bogus__c'"}])

        async with _mock_client(handler) as client:
            with pytest.raises(IntegrationError) as exc_info:
                await salesforce.sync_organizations(session, client=client)
        assert exc_info.value.message == "No such column 'Bogus__c'"

    async def test_transport_error_is_integration_error(self, session, connection):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("dns failure", request=request)

        async with _mock_client(handler) as client:
            with pytest.raises(IntegrationError):
                await salesforce.sync_organizations(session, client=client)


# ---------------------------------------------------------------------------
# 7. Metadata
# ---------------------------------------------------------------------------


class TestAccountFieldMetadata:
    """Describe → candidate fields for status and domain."""

    async def test_candidates(self, session, connection):
        describe = {
            "fields": [
                {
                    "name": "Type",
                    "label": "Account Type",
                    "type": "picklist",
                    "picklistValues": [
                        {"value": "Customer", "active": True},
                        {"value": "Legacy", "active": False},
                    ],
                },
                {"name": "Website", "label": "Website", "type": "url"},
                {"name": "NumberOfEmployees", "type": "int"},
                {"label": "nameless"},
            ]
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/services/data/v59.0/sobjects/Account/describe"
            return httpx.Response(200, json=describe)

        async with _mock_client(handler) as client:
            meta = await salesforce.account_field_metadata(session, client=client)

        assert meta["object"] == "Account"
        assert [f["name"] for f in meta["fields"]] == ["Type", "Website", "NumberOfEmployees"]
        assert meta["fields"][0]["picklist_values"] == ["Customer"]
        assert meta["fields"][2]["label"] == "NumberOfEmployees"
        assert [f["name"] for f in meta["status_field_candidates"]] == ["Type"]
        assert [f["name"] for f in meta["domain_field_candidates"]] == ["Website"]


# ---------------------------------------------------------------------------
# 8. Scheduled task
# ---------------------------------------------------------------------------


class TestScheduledSync:
    """The Celery task body skips cleanly when nothing is connected."""

    async def test_skips_without_connection(self, session):
        from trustcenter.workers.tasks import run_scheduled_sync

        assert await run_scheduled_sync() == {"status": "skipped", "reason": "not connected"}

    async def test_status_reports_disconnected(self, session):
        assert await salesforce.connection_status(session) == {"connected": False}

    async def test_disconnect(self, session, connection):
        await salesforce.disconnect(session)
        await session.commit()
        assert await salesforce.get_active_connection(session) is None

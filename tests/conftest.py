# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Environment is pinned BEFORE trustcenter is imported: settings are read
# once and cached, and the engine is built at import time.
#
#   - SQLite file in a temp dir via aiosqlite (tables created per test)
#   - rate limiting off (no Redis needed)
#   - uploads in the temp dir
#
# Fixtures:
#   session        AsyncSession on fresh tables
#   outbox         captures every email instead of sending it
#   admin          AdminContext: an active admin and its raw bearer token
#   client         httpx.AsyncClient over ASGITransport (no lifespan)
#   make_document / make_org  row factories
# =============================================================================

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field

_TMP_DIR = tempfile.mkdtemp(prefix="trustcenter-tests-")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["UPLOADS_DIR"] = f"{_TMP_DIR}/uploads"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ["DEMO_MODE"] = "false"
os.environ["STATE_SECRET"] = "test-state-secret"
os.environ["FRONTEND_URL"] = "https://portal.trust.test"
os.environ["API_URL"] = "https://api.trust.test"
os.environ["EMAIL_PROVIDER"] = "mailpit"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from trustcenter.db.engine import async_engine, async_session_factory  # noqa: E402
from trustcenter.db.models import (  # noqa: E402
    AccessLevel,
    AdminUser,
    Base,
    Document,
    DocumentStatus,
    Organization,
    OrganizationStatus,
)
from trustcenter.errors import EmailDeliveryError  # noqa: E402
from trustcenter.services.auth import generate_admin_token  # noqa: E402
from trustcenter.services.email import OutgoingEmail, set_email_provider  # noqa: E402


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def database():
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections must not outlive the test's event loop
    await async_engine.dispose()


@pytest.fixture
async def session(database):
    async with async_session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Email capture
# ---------------------------------------------------------------------------


@dataclass
class FakeEmailProvider:
    """Records messages; set `fail_with` to simulate a provider outage."""

    name: str = "fake"
    sent: list[OutgoingEmail] = field(default_factory=list)
    fail_with: str | None = None

    async def send(self, message: OutgoingEmail) -> None:
        if self.fail_with:
            raise EmailDeliveryError(self.fail_with)
        self.sent.append(message)

    def to(self, address: str) -> list[OutgoingEmail]:
        return [m for m in self.sent if m.to == address]


@pytest.fixture
def outbox():
    provider = FakeEmailProvider()
    set_email_provider(provider)
    yield provider
    set_email_provider(None)


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


@pytest.fixture
def make_document(session):
    async def _make(
        title: str = "SOC 2 Type II Report",
        access_level: AccessLevel = AccessLevel.RESTRICTED,
        status: DocumentStatus = DocumentStatus.PUBLISHED,
        **kwargs,
    ) -> Document:
        document = Document(title=title, access_level=access_level, status=status, **kwargs)
        session.add(document)
        await session.commit()
        return document

    return _make


@pytest.fixture
def make_org(session):
    async def _make(
        domain: str = "acme.io",
        status: OrganizationStatus | None = None,
        approved_document_ids: list[int] | None = None,
        is_active: bool = True,
        name: str | None = None,
    ) -> Organization:
        org = Organization(
            name=name or domain.split(".")[0].capitalize(),
            email_domain=domain,
            status=status,
            is_active=is_active,
            approved_document_ids=approved_document_ids or [],
        )
        session.add(org)
        await session.commit()
        return org

    return _make


@dataclass
class AdminContext:
    user: AdminUser
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture
async def admin(session) -> AdminContext:
    raw, prefix, token_hash = generate_admin_token()
    user = AdminUser(
        email="reviewer@trustcenter.com",
        full_name="Rita Reviewer",
        role="admin",
        token_prefix=prefix,
        token_hash=token_hash,
        is_active=True,
    )
    session.add(user)
    await session.commit()
    return AdminContext(user=user, token=raw)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(database):
    from trustcenter.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

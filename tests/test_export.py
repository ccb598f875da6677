# =============================================================================
# Tests — Trust-Center Export
# =============================================================================
#
# Test groups:
#   1. Query parsing and CSV rendering (pure)
#   2. Full JSON export endpoint
#   3. Per-section endpoints (JSON and CSV)
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from trustcenter.db.engine import async_session_factory
from trustcenter.db.models import (
    AccessLevel,
    ActivityLog,
    Certification,
    CertificationStatus,
    Control,
    ControlCategory,
    DocumentStatus,
    SecurityUpdate,
    Subprocessor,
    TrustCenterSettings,
)
from trustcenter.errors import InvalidInputError
from trustcenter.services.export import SECTIONS, parse_sections, parse_since, to_csv


@pytest.fixture
async def seeded(session, make_document):
    """One visible and one hidden row per section."""
    now = datetime.now(UTC)
    await make_document("SOC 2 Report", category="Audit Reports", version="2026")
    await make_document("Old Policy", status=DocumentStatus.ARCHIVED)
    await make_document("Pen Test Summary", access_level=AccessLevel.PUBLIC)

    category = ControlCategory(name="Access Control", sort_order=0)
    category.controls = [
        Control(title="MFA required", sort_order=0),
        Control(title="SSO, enforced", description='Uses "SAML"', sort_order=1),
    ]
    session.add_all([
        Certification(name="SOC 2", issuer="AICPA", display_order=0),
        Certification(name="PCI", issuer="PCI SSC", status=CertificationStatus.INACTIVE),
        category,
        SecurityUpdate(title="Log4j", content="Not affected", published_at=now),
        SecurityUpdate(title="Draft", content="...", published_at=None),
        Subprocessor(name="AWS", purpose="Hosting", data_location="US"),
        Subprocessor(name="Legacy", purpose="CDN", is_active=False),
        TrustCenterSettings(
            company_name="Acme",
            contact_email="security@acme.io",
            social_links={"website": "https://acme.io"},
        ),
    ])
    await session.commit()


# ---------------------------------------------------------------------------
# 1. Parsing & CSV
# ---------------------------------------------------------------------------


class TestParsing:
    def test_sections_default_to_all(self):
        assert parse_sections(None) == list(SECTIONS)

    def test_sections_deduplicated_in_request_order(self):
        assert parse_sections("documents, certifications,documents") == [
            "documents",
            "certifications",
        ]

    def test_unknown_section(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_sections("certifications,secrets")
        assert exc_info.value.extra["supported"] == list(SECTIONS)

    def test_since_accepts_date_and_zulu(self):
        assert parse_since("2026-03-01") == datetime(2026, 3, 1, tzinfo=UTC)
        assert parse_since("2026-03-01T12:00:00Z") == datetime(2026, 3, 1, 12, tzinfo=UTC)

    def test_since_normalised_to_utc(self):
        assert parse_since("2026-03-01T12:00:00+02:00") == datetime(2026, 3, 1, 10, tzinfo=UTC)

    def test_since_invalid(self):
        with pytest.raises(InvalidInputError):
            parse_since("last tuesday")


class TestCsv:
    def test_quoting_and_nulls(self):
        rows = [
            {"name": "SSO, enforced", "note": 'Uses "SAML"', "order": 1, "extra": None},
            {"name": "Multi\nline", "note": "", "order": 2, "extra": {"a": 1}},
        ]
        assert to_csv(rows) == (
            "name,note,order,extra\n"
            '"SSO, enforced","Uses ""SAML""",1,\n'
            '"Multi\nline",,2,"{""a"": 1}"\n'
        )

    def test_formula_prefix_neutralised(self):
        assert to_csv([{"name": "=HYPERLINK(1)"}]) == "name\n'=HYPERLINK(1)\n"

    def test_empty(self):
        assert to_csv([]) == ""


# ---------------------------------------------------------------------------
# 2. Full export
# ---------------------------------------------------------------------------


class TestFullExport:
    async def test_only_public_content_is_exported(self, client, admin, seeded):
        response = await client.get("/api/export", headers=admin.headers)

        assert response.status_code == 200
        assert response.headers["content-disposition"].startswith(
            'attachment; filename="trust-center-export-'
        )
        body = response.json()
        assert body["export_metadata"]["version"] == "1.0"
        assert body["export_metadata"]["trust_center_name"] == "Acme"
        assert body["export_metadata"]["exported_by"] == "reviewer@trustcenter.com"
        assert body["organization"] == {
            "name": "Acme",
            "website": "https://acme.io",
            "contact_email": "security@acme.io",
            "support_email": None,
        }
        assert [c["name"] for c in body["certifications"]] == ["SOC 2"]
        assert [d["title"] for d in body["documents"]] == ["Pen Test Summary", "SOC 2 Report"]
        assert [u["title"] for u in body["security_updates"]] == ["Log4j"]
        assert [s["name"] for s in body["subprocessors"]] == ["AWS"]
        [category] = body["controls"]["categories"]
        assert [c["title"] for c in category["controls"]] == ["MFA required", "SSO, enforced"]

    async def test_export_is_logged(self, client, admin, seeded):
        await client.get(
            "/api/export", params={"include": "certifications"}, headers=admin.headers
        )

        async with async_session_factory() as s:
            entry = await s.scalar(select(ActivityLog).where(ActivityLog.action_type == "export"))
        assert entry.entity_type == "trust_center"
        assert entry.new_value["sections"] == ["certifications"]

    async def test_include_limits_sections(self, client, admin, seeded):
        response = await client.get(
            "/api/export", params={"include": "subprocessors"}, headers=admin.headers
        )

        body = response.json()
        assert "subprocessors" in body
        assert "certifications" not in body

    async def test_since_in_the_future_exports_nothing(self, client, admin, seeded):
        tomorrow = (datetime.now(UTC) + timedelta(days=1)).date().isoformat()
        response = await client.get(
            "/api/export", params={"since": tomorrow}, headers=admin.headers
        )

        body = response.json()
        assert body["certifications"] == []
        assert body["documents"] == []

    async def test_csv_needs_a_section(self, client, admin, seeded):
        response = await client.get(
            "/api/export", params={"format": "csv"}, headers=admin.headers
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("CSV format requires a specific section")

    async def test_bad_since(self, client, admin, seeded):
        response = await client.get(
            "/api/export", params={"since": "yesterday"}, headers=admin.headers
        )
        assert response.status_code == 400
        assert response.json() == {"error": 'Invalid date format for "since" parameter'}

    async def test_requires_admin(self, client):
        response = await client.get("/api/export")
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# 3. Per-section
# ---------------------------------------------------------------------------


class TestSectionExport:
    async def test_json_keyed_by_section(self, client, admin, seeded):
        response = await client.get("/api/export/security-updates", headers=admin.headers)

        assert response.status_code == 200
        assert [u["title"] for u in response.json()["security_updates"]] == ["Log4j"]

    async def test_subprocessors_csv(self, client, admin, seeded):
        response = await client.get(
            "/api/export/subprocessors", params={"format": "csv"}, headers=admin.headers
        )

        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == (
            'attachment; filename="subprocessors.csv"'
        )
        header, row = response.text.strip().split("\n")
        assert header == "id,name,purpose,data_location,website_url,category"
        assert row.endswith(",AWS,Hosting,US,,Other")

    async def test_controls_csv_is_one_row_per_control(self, client, admin, seeded):
        response = await client.get(
            "/api/export/controls", params={"format": "csv"}, headers=admin.headers
        )

        lines = response.text.strip().split("\n")
        assert lines[0] == (
            "category_id,category_name,category_description,"
            "control_id,control_title,control_description,control_sort_order"
        )
        assert len(lines) == 3
        assert '"SSO, enforced","Uses ""SAML"""' in lines[2]

    async def test_controls_json_nests_under_categories(self, client, admin, seeded):
        response = await client.get("/api/export/controls", headers=admin.headers)
        assert response.json()["categories"][0]["name"] == "Access Control"

    async def test_unknown_section(self, client, admin):
        response = await client.get("/api/export/secrets", headers=admin.headers)
        assert response.status_code == 404

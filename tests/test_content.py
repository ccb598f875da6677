# =============================================================================
# API Tests — Trust-Center Content
# =============================================================================
#
# Same conventions as test_api.py: rows seeded through the `session` fixture
# are committed before any HTTP call; reads after a call use a fresh session.
#
# Test groups:
#   1. Certifications
#   2. Document categories
#   3. Control categories & controls
#   4. Security updates
#   5. Settings
#   6. Subprocessors & subscriptions
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select

from trustcenter.db.engine import async_session_factory
from trustcenter.db.models import (
    ActivityLog,
    Certification,
    CertificationStatus,
    SecurityUpdate,
    Severity,
    Subprocessor,
    SubprocessorSubscription,
)


async def fetch_activity() -> list[tuple[str, str]]:
    async with async_session_factory() as s:
        result = await s.execute(
            select(ActivityLog.action_type, ActivityLog.entity_type).order_by(ActivityLog.id)
        )
        return [tuple(row) for row in result.all()]


# ---------------------------------------------------------------------------
# 1. Certifications
# ---------------------------------------------------------------------------


class TestCertifications:
    """Public list shows active certifications only, in display order."""

    async def test_public_list_hides_inactive(self, client, session):
        session.add_all([
            Certification(name="ISO 27001", issuer="BSI", display_order=2),
            Certification(name="SOC 2 Type II", issuer="AICPA", display_order=1),
            Certification(
                name="PCI DSS", issuer="PCI SSC", status=CertificationStatus.INACTIVE
            ),
        ])
        await session.commit()

        response = await client.get("/api/certifications")

        assert response.status_code == 200
        body = response.json()
        assert [c["name"] for c in body["certifications"]] == ["SOC 2 Type II", "ISO 27001"]
        assert body["total"] == 2

    async def test_admin_listing_includes_inactive(self, client, session, admin):
        session.add(
            Certification(name="PCI DSS", issuer="PCI SSC", status=CertificationStatus.INACTIVE)
        )
        await session.commit()

        response = await client.get("/api/certifications/all", headers=admin.headers)

        assert [c["status"] for c in response.json()["certifications"]] == ["inactive"]

    async def test_create_update_delete(self, client, admin):
        created = await client.post(
            "/api/certifications",
            json={"name": "SOC 2", "issuer": "AICPA", "issue_date": "2026-01-15"},
            headers=admin.headers,
        )
        assert created.status_code == 201
        cert = created.json()
        assert cert["status"] == "active"
        assert cert["issue_date"] == "2026-01-15"

        patched = await client.patch(
            f"/api/certifications/{cert['id']}",
            json={"status": "inactive"},
            headers=admin.headers,
        )
        assert patched.json()["status"] == "inactive"
        assert (await client.get("/api/certifications")).json()["total"] == 0

        deleted = await client.delete(
            f"/api/certifications/{cert['id']}", headers=admin.headers
        )
        assert deleted.json() == {
            "success": True,
            "message": "Certification deleted successfully",
        }
        assert await fetch_activity() == [
            ("create", "certification"),
            ("update", "certification"),
            ("delete", "certification"),
        ]

    async def test_writes_require_admin(self, client):
        response = await client.post(
            "/api/certifications", json={"name": "SOC 2", "issuer": "AICPA"}
        )
        assert response.status_code == 401

    async def test_missing_certification(self, client, admin):
        response = await client.patch(
            "/api/certifications/999", json={"name": "X"}, headers=admin.headers
        )
        assert response.status_code == 404
        assert response.json() == {"error": "Certification not found"}


# ---------------------------------------------------------------------------
# 2. Document categories
# ---------------------------------------------------------------------------


class TestDocumentCategories:
    async def test_ordered_by_display_order(self, client, admin):
        for name, order in (("Policies", 2), ("Audit Reports", 1)):
            await client.post(
                "/api/document-categories",
                json={"name": name, "display_order": order},
                headers=admin.headers,
            )

        response = await client.get("/api/document-categories")

        assert [c["name"] for c in response.json()["categories"]] == [
            "Audit Reports",
            "Policies",
        ]

    async def test_duplicate_name_conflicts(self, client, admin):
        await client.post(
            "/api/document-categories", json={"name": "Policies"}, headers=admin.headers
        )
        response = await client.post(
            "/api/document-categories", json={"name": "Policies"}, headers=admin.headers
        )

        assert response.status_code == 409
        assert response.json() == {"error": "Category 'Policies' already exists"}

    async def test_delete(self, client, admin):
        created = await client.post(
            "/api/document-categories", json={"name": "Policies"}, headers=admin.headers
        )
        response = await client.delete(
            f"/api/document-categories/{created.json()['id']}", headers=admin.headers
        )

        assert response.json()["message"] == "Category deleted successfully"
        assert (await client.get("/api/document-categories")).json()["total"] == 0


# ---------------------------------------------------------------------------
# 3. Controls
# ---------------------------------------------------------------------------


class TestControls:
    """Controls belong to a category and are listed with it."""

    async def _category(self, client, admin, name="Access Control", sort_order=0):
        response = await client.post(
            "/api/control-categories",
            json={"name": name, "icon": "lock", "sort_order": sort_order},
            headers=admin.headers,
        )
        assert response.status_code == 201
        return response.json()

    async def test_controls_listed_with_category(self, client, admin):
        access = await self._category(client, admin)
        crypto = await self._category(client, admin, "Encryption", sort_order=1)
        for category, title, order in (
            (access, "SSO enforced", 2),
            (access, "MFA required", 1),
            (crypto, "AES-256 at rest", 0),
        ):
            await client.post(
                "/api/controls",
                json={"category_id": category["id"], "title": title, "sort_order": order},
                headers=admin.headers,
            )

        categories = await client.get("/api/control-categories")
        assert [c["name"] for c in categories.json()["categories"]] == [
            "Access Control",
            "Encryption",
        ]

        filtered = await client.get("/api/controls", params={"category_id": access["id"]})
        controls = filtered.json()["controls"]
        assert [c["title"] for c in controls] == ["MFA required", "SSO enforced"]
        assert controls[0]["category"]["name"] == "Access Control"

    async def test_unknown_category_rejected(self, client, admin):
        response = await client.post(
            "/api/controls",
            json={"category_id": 42, "title": "MFA required"},
            headers=admin.headers,
        )

        assert response.status_code == 400
        assert response.json()["category_id"] == 42

    async def test_move_control_between_categories(self, client, admin):
        access = await self._category(client, admin)
        crypto = await self._category(client, admin, "Encryption")
        control = (
            await client.post(
                "/api/controls",
                json={"category_id": access["id"], "title": "Key rotation"},
                headers=admin.headers,
            )
        ).json()

        response = await client.patch(
            f"/api/controls/{control['id']}",
            json={"category_id": crypto["id"]},
            headers=admin.headers,
        )

        assert response.status_code == 200
        assert response.json()["category"]["name"] == "Encryption"

    async def test_deleting_category_removes_its_controls(self, client, admin):
        access = await self._category(client, admin)
        await client.post(
            "/api/controls",
            json={"category_id": access["id"], "title": "MFA required"},
            headers=admin.headers,
        )

        response = await client.delete(
            f"/api/control-categories/{access['id']}", headers=admin.headers
        )

        assert response.status_code == 200
        assert (await client.get("/api/controls")).json()["total"] == 0


# ---------------------------------------------------------------------------
# 4. Security updates
# ---------------------------------------------------------------------------


class TestSecurityUpdates:
    """Drafts and scheduled updates stay off the public page."""

    async def test_public_list_shows_published_newest_first(self, client, session):
        now = datetime.now(UTC)
        for title, offset in (
            ("Old advisory", timedelta(days=-30)),
            ("New advisory", timedelta(days=-1)),
            ("Scheduled", timedelta(days=3)),
        ):
            session.add(SecurityUpdate(title=title, content="...", published_at=now + offset))
        session.add(SecurityUpdate(title="Draft", content="...", published_at=None))
        await session.commit()

        response = await client.get("/api/security-updates")

        assert [u["title"] for u in response.json()["updates"]] == [
            "New advisory",
            "Old advisory",
        ]

    async def test_admin_listing_includes_drafts(self, client, session, admin):
        session.add(SecurityUpdate(title="Draft", content="...", published_at=None))
        await session.commit()

        response = await client.get("/api/security-updates/all", headers=admin.headers)

        assert [u["title"] for u in response.json()["updates"]] == ["Draft"]

    async def test_create_defaults_published_at_to_now(self, client, admin):
        response = await client.post(
            "/api/security-updates",
            json={"title": "Log4j", "content": "Not affected.", "severity": "critical"},
            headers=admin.headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["severity"] == Severity.CRITICAL.value
        assert body["published_at"] is not None
        assert (await client.get("/api/security-updates")).json()["total"] == 1

    async def test_unpublish_with_explicit_null(self, client, admin):
        created = (
            await client.post(
                "/api/security-updates",
                json={"title": "Log4j", "content": "Not affected."},
                headers=admin.headers,
            )
        ).json()

        await client.patch(
            f"/api/security-updates/{created['id']}",
            json={"published_at": None},
            headers=admin.headers,
        )

        assert (await client.get("/api/security-updates")).json()["total"] == 0

    async def test_invalid_severity(self, client, admin):
        response = await client.post(
            "/api/security-updates",
            json={"title": "X", "content": "Y", "severity": "apocalyptic"},
            headers=admin.headers,
        )
        assert response.status_code == 400
        assert response.json()["fields"] == ["severity"]


# ---------------------------------------------------------------------------
# 5. Settings
# ---------------------------------------------------------------------------


class TestSettings:
    async def test_defaults_before_anything_is_saved(self, client):
        response = await client.get("/api/settings")

        assert response.status_code == 200
        body = response.json()
        assert body["company_name"] == "Trust Center"
        assert body["hero_title"] == "Security & Compliance"
        assert body["primary_color"] == "#007bff"
        assert body["secondary_color"] == "#6c757d"

    async def test_saved_settings_keep_unsent_defaults(self, client, admin):
        saved = await client.put(
            "/api/settings",
            json={
                "company_name": "Acme",
                "social_links": {"website": "https://acme.io"},
            },
            headers=admin.headers,
        )
        assert saved.status_code == 200

        body = (await client.get("/api/settings")).json()
        assert body["company_name"] == "Acme"
        assert body["social_links"] == {"website": "https://acme.io"}
        assert body["hero_title"] == "Security & Compliance"
        assert ("update", "settings") in await fetch_activity()

    async def test_second_save_updates_the_same_row(self, client, admin):
        await client.put("/api/settings", json={"company_name": "Acme"}, headers=admin.headers)
        await client.put(
            "/api/settings", json={"primary_color": "#111111"}, headers=admin.headers
        )

        body = (await client.get("/api/settings")).json()
        assert body["company_name"] == "Acme"
        assert body["primary_color"] == "#111111"


# ---------------------------------------------------------------------------
# 6. Subprocessors
# ---------------------------------------------------------------------------


class TestSubprocessors:
    async def test_inactive_hidden_unless_requested(self, client, session):
        session.add_all([
            Subprocessor(name="AWS", purpose="Hosting", display_order=1),
            Subprocessor(name="Legacy CDN", purpose="CDN", is_active=False, display_order=0),
        ])
        await session.commit()

        public = await client.get("/api/subprocessors")
        everything = await client.get(
            "/api/subprocessors", params={"include_inactive": "true"}
        )

        assert [s["name"] for s in public.json()["subprocessors"]] == ["AWS"]
        assert [s["name"] for s in everything.json()["subprocessors"]] == [
            "Legacy CDN",
            "AWS",
        ]

    async def test_admin_edits_are_logged(self, client, admin):
        created = await client.post(
            "/api/subprocessors",
            json={"name": "Stripe", "purpose": "Payments", "data_location": "US"},
            headers=admin.headers,
        )
        assert created.status_code == 201
        sub_id = created.json()["id"]

        await client.patch(
            f"/api/subprocessors/{sub_id}", json={"is_active": False}, headers=admin.headers
        )
        deleted = await client.delete(f"/api/subprocessors/{sub_id}", headers=admin.headers)

        assert deleted.status_code == 200
        assert await fetch_activity() == [
            ("create", "subprocessor"),
            ("update", "subprocessor"),
            ("delete", "subprocessor"),
        ]


class TestSubprocessorSubscribe:
    """One subscription per address, compared case-insensitively."""

    async def test_new_then_repeat(self, client):
        first = await client.post(
            "/api/subprocessors/subscribe", json={"email": "Security@Acme.io"}
        )
        again = await client.post(
            "/api/subprocessors/subscribe", json={"email": "security@acme.io"}
        )

        assert first.status_code == 201
        assert first.json()["message"] == "Subscribed successfully"
        assert again.status_code == 200
        assert again.json()["message"] == "Already subscribed"

        async with async_session_factory() as s:
            emails = (await s.execute(select(SubprocessorSubscription.email))).scalars().all()
            assert emails == ["security@acme.io"]

    async def test_invalid_email(self, client):
        response = await client.post("/api/subprocessors/subscribe", json={"email": "nope"})

        assert response.status_code == 400
        assert response.json() == {"error": "Valid email is required"}

    async def test_missing_email(self, client):
        response = await client.post("/api/subprocessors/subscribe", json={})

        assert response.status_code == 400
        async with async_session_factory() as s:
            count = await s.scalar(select(func.count(SubprocessorSubscription.id)))
            assert count == 0

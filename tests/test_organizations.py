# =============================================================================
# Tests — Organization Resolver & Access Tiers
# =============================================================================
#
# Test groups:
#   1. Domain extraction / personal providers / name derivation (pure)
#   2. Access decision and document partitioning (pure)
#   3. get_or_create_organization against SQLite
#   4. Admin status transitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from sqlalchemy import func, select

from trustcenter.db.engine import async_session_factory
from trustcenter.db.models import Organization, OrganizationStatus
from trustcenter.services import organizations
from trustcenter.services.organizations import (
    apply_status,
    archive,
    check_organization_access,
    derive_organization_name,
    extract_email_domain,
    get_or_create_organization,
    is_personal_domain,
    merge_document_ids,
    partition_documents,
    restore,
)


@dataclass
class FakeOrg:
    """Stand-in for Organization in pure decision tests."""

    status: OrganizationStatus | None = None
    is_active: bool = True
    approved_document_ids: list[int] = field(default_factory=list)
    revoked_at: object = None


# ---------------------------------------------------------------------------
# 1. Pure helpers
# ---------------------------------------------------------------------------


class TestDomainHelpers:
    """Email → domain, personal provider detection, display names."""

    def test_domain_is_lowercased(self):
        assert extract_email_domain("Jane@ACME.io") == "acme.io"

    @pytest.mark.parametrize("email", [None, "", "no-at-sign", "a@b@c", "@acme.io", "jane@"])
    def test_malformed_addresses_have_no_domain(self, email):
        assert extract_email_domain(email) is None

    def test_personal_domains(self):
        assert is_personal_domain("gmail.com")
        assert is_personal_domain("Outlook.com")
        assert not is_personal_domain("acme.io")

    def test_name_prefers_company(self):
        assert derive_organization_name("acme.io", "  Acme Corp ") == "Acme Corp"

    def test_name_falls_back_to_first_label(self):
        assert derive_organization_name("globex.co.uk") == "Globex"
        assert derive_organization_name("initech.com", "   ") == "Initech"

    def test_merge_is_ordered_union(self):
        """Existing order kept, new ids appended once."""
        assert merge_document_ids([3, 1], [1, 5, 5, 2]) == [3, 1, 5, 2]
        assert merge_document_ids(None, [2]) == [2]


# ---------------------------------------------------------------------------
# 2. Access decision
# ---------------------------------------------------------------------------


class TestAccessDecision:
    """Tiering: no_access refuses, active whitelist approves all, else per set."""

    def test_no_organization_has_access_with_nothing_preapproved(self):
        decision = check_organization_access(None)
        assert decision.has_access
        assert not decision.auto_approve_all
        assert partition_documents(decision, [1, 2]) == ([], [1, 2])

    def test_no_access_is_refused(self):
        decision = check_organization_access(FakeOrg(status=OrganizationStatus.NO_ACCESS))
        assert not decision.has_access

    def test_whitelisted_active_auto_approves_everything(self):
        decision = check_organization_access(FakeOrg(status=OrganizationStatus.WHITELISTED))
        assert decision.auto_approve_all
        assert partition_documents(decision, [4, 1]) == ([4, 1], [])

    def test_whitelisted_but_inactive_falls_back_to_set(self):
        decision = check_organization_access(
            FakeOrg(
                status=OrganizationStatus.WHITELISTED,
                is_active=False,
                approved_document_ids=[2],
            )
        )
        assert not decision.auto_approve_all
        assert partition_documents(decision, [1, 2]) == ([2], [1])

    def test_conditional_partitions_by_approved_set(self):
        """Order of the request is kept on both sides."""
        decision = check_organization_access(
            FakeOrg(status=OrganizationStatus.CONDITIONAL, approved_document_ids=[3, 1])
        )
        assert partition_documents(decision, [1, 2, 3, 4]) == ([1, 3], [2, 4])

    def test_null_status_uses_approved_set(self):
        decision = check_organization_access(FakeOrg(approved_document_ids=[7]))
        assert partition_documents(decision, [7, 8]) == ([7], [8])


# ---------------------------------------------------------------------------
# 3. Resolver
# ---------------------------------------------------------------------------


class TestGetOrCreateOrganization:
    """Lazy creation, one row per domain, including under a creation race."""

    async def test_creates_with_null_status(self, session):
        org = await get_or_create_organization(session, "Acme.io", "Acme Inc")
        await session.commit()

        assert org.id is not None
        assert org.email_domain == "acme.io"
        assert org.name == "Acme Inc"
        assert org.status is None
        assert org.is_active is True
        assert org.approved_document_ids == []

    async def test_second_call_returns_existing_row(self, session):
        first = await get_or_create_organization(session, "acme.io", "Acme")
        second = await get_or_create_organization(session, "ACME.IO", "Something Else")
        await session.commit()

        assert first.id == second.id
        assert second.name == "Acme"
        count = await session.scalar(select(func.count(Organization.id)))
        assert count == 1

    async def test_lost_creation_race_reuses_winning_row(self, session, monkeypatch):
        """A concurrent insert between lookup and flush is absorbed."""
        real_lookup = organizations.get_organization_by_domain
        lookups = []

        async def lookup_after_rival_commits(s, domain):
            lookups.append(domain)
            if len(lookups) == 1:
                async with async_session_factory() as rival:
                    rival.add(
                        Organization(
                            name="Acme Rival",
                            email_domain=domain,
                            is_active=True,
                            approved_document_ids=[],
                        )
                    )
                    await rival.commit()
                return None
            return await real_lookup(s, domain)

        monkeypatch.setattr(
            organizations, "get_organization_by_domain", lookup_after_rival_commits
        )

        org = await get_or_create_organization(session, "acme.io", "Acme")
        await session.commit()

        assert lookups == ["acme.io", "acme.io"]
        assert org.name == "Acme Rival"
        count = await session.scalar(select(func.count(Organization.id)))
        assert count == 1


# ---------------------------------------------------------------------------
# 4. Status transitions
# ---------------------------------------------------------------------------


class TestStatusTransitions:
    """apply_status / archive / restore."""

    def test_no_access_revokes(self):
        org = FakeOrg(status=OrganizationStatus.WHITELISTED)
        apply_status(org, OrganizationStatus.NO_ACCESS)
        assert org.is_active is False
        assert org.revoked_at is not None

    def test_other_status_reactivates(self):
        org = FakeOrg(status=OrganizationStatus.NO_ACCESS, is_active=False, revoked_at="x")
        apply_status(org, OrganizationStatus.WHITELISTED)
        assert org.is_active is True
        assert org.revoked_at is None
        assert org.status == OrganizationStatus.WHITELISTED

    def test_archive_then_restore(self):
        """Archive blocks; restore lands on conditional, keeping approvals."""
        org = FakeOrg(status=OrganizationStatus.WHITELISTED, approved_document_ids=[1])
        archive(org)
        assert org.status == OrganizationStatus.NO_ACCESS
        assert org.is_active is False

        restore(org)
        assert org.status == OrganizationStatus.CONDITIONAL
        assert org.is_active is True
        assert org.revoked_at is None
        assert org.approved_document_ids == [1]

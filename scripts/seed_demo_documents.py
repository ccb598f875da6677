#!/usr/bin/env python3
"""
Seed a demo Trust Center: synthetic compliance PDFs, their document
records, and an initial admin.

PDFs are rendered with fpdf2 into settings.uploads_dir. Documents that
already exist (same title) are left alone, so the script is safe to re-run.

Usage:
    uv run python scripts/seed_demo_documents.py [--admin-email admin@trustcenter.com]

The admin's bearer token is printed once; it cannot be recovered later.
"""

import argparse
import asyncio
from datetime import UTC, datetime

from sqlalchemy import select

from trustcenter.db.engine import async_engine, async_session_factory, init_models
from trustcenter.db.models import AccessLevel, AdminUser, Document, DocumentStatus
from trustcenter.services.auth import generate_admin_token
from trustcenter.services.placeholder import render_document_pdf
from trustcenter.services.storage import save_file

# (filename, title, category, access level, description)
DEMO_DOCUMENTS = [
    ("demo-soc2-type2-2025.pdf", "SOC 2 Type II Report 2025", "SOC 2 Reports", AccessLevel.RESTRICTED,
     "Annual SOC 2 Type II audit report covering the Security, Availability and "
     "Confidentiality trust service criteria."),
    ("demo-soc2-bridge-letter.pdf", "SOC 2 Bridge Letter", "SOC 2 Reports", AccessLevel.RESTRICTED,
     "Bridge letter extending SOC 2 coverage during the gap period between audits."),
    ("demo-soc2-faq.pdf", "SOC 2 Compliance FAQ", "SOC 2 Reports", AccessLevel.PUBLIC,
     "Frequently asked questions about our SOC 2 compliance program."),
    ("demo-privacy-policy.pdf", "Privacy Policy", "Privacy Policies", AccessLevel.PUBLIC,
     "How we collect, use and retain personal data, and your rights."),
    ("demo-dpa.pdf", "Data Processing Agreement", "Privacy Policies", AccessLevel.RESTRICTED,
     "Standard Data Processing Agreement for data protection compliance."),
    ("demo-pentest-q4-2025.pdf", "Penetration Test Report Q4 2025", "Penetration Tests",
     AccessLevel.RESTRICTED,
     "Quarterly penetration test report. All findings remediated."),
    ("demo-iso27001-cert.pdf", "ISO 27001 Certificate", "ISO Certifications", AccessLevel.PUBLIC,
     "ISO/IEC 27001:2022 certificate of registration for our ISMS."),
    ("demo-iso27001-soa.pdf", "ISO 27001 Statement of Applicability", "ISO Certifications",
     AccessLevel.RESTRICTED,
     "Annex A controls and their implementation status."),
    ("demo-security-whitepaper.pdf", "Security Whitepaper", "Compliance Reports", AccessLevel.PUBLIC,
     "Overview of our security architecture, practices and compliance posture."),
    ("demo-business-continuity.pdf", "Business Continuity Plan Summary", "Compliance Reports",
     AccessLevel.RESTRICTED,
     "Executive summary of our business continuity and disaster recovery plan."),
]

BOILERPLATE_SECTIONS = [
    ("Scope", "This document covers the production systems, supporting infrastructure "
              "and personnel that deliver the service to customers."),
    ("Controls", "Access to production is restricted to authorised personnel, reviewed "
                 "quarterly, and protected by multi-factor authentication. Changes are "
                 "peer reviewed and deployed through an audited pipeline."),
    ("Contact", "Questions about this document can be sent to security@trustcenter.com."),
]


async def seed(admin_email: str) -> None:
    await init_models()
    async with async_session_factory() as session:
        admin = await session.scalar(select(AdminUser).where(AdminUser.email == admin_email))
        if admin is None:
            raw_token, token_prefix, token_hash = generate_admin_token()
            admin = AdminUser(
                email=admin_email,
                full_name="Demo Admin",
                role="admin",
                token_prefix=token_prefix,
                token_hash=token_hash,
                is_active=True,
            )
            session.add(admin)
            await session.flush()
            print(f"Created admin {admin_email}")
            print(f"  token: {raw_token}  (shown once)")
        else:
            print(f"Admin {admin_email} already exists (token prefix {admin.token_prefix})")

        existing = set((await session.execute(select(Document.title))).scalars().all())
        created = 0
        for filename, title, category, access_level, description in DEMO_DOCUMENTS:
            if title in existing:
                continue
            pdf_bytes = render_document_pdf(title, description, category, BOILERPLATE_SECTIONS)
            session.add(
                Document(
                    title=title,
                    description=description,
                    category=category,
                    access_level=access_level,
                    status=DocumentStatus.PUBLISHED,
                    file_url=save_file(filename, pdf_bytes),
                    file_name=filename,
                    file_size=len(pdf_bytes),
                    file_type="application/pdf",
                    version="1.0",
                    version_number=1,
                    is_current_version=True,
                    uploaded_by=admin.id,
                    published_at=datetime.now(UTC),
                )
            )
            created += 1
            print(f"  + {title} ({access_level.value})")

        await session.commit()
    await async_engine.dispose()
    print(f"Seeded {created} document(s)")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--admin-email", default="admin@trustcenter.com")
    args = parser.parse_args()
    asyncio.run(seed(args.admin_email.strip().lower()))


if __name__ == "__main__":
    main()

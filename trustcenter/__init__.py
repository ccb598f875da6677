# =============================================================================
# Trust Center
# =============================================================================
# Backend for a company trust portal: publishes compliance documents, gates
# restricted ones behind an approval workflow, and grants time-limited access
# through magic links.
#
# Package structure:
#   trustcenter/
#   ├── api/          → FastAPI route handlers (requests, access, documents,
#   │                    admin, organizations, webhooks, salesforce)
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Business logic (workflow, access gateway, email,
#   │                    activity log, webhooks, Salesforce sync)
#   └── workers/      → Celery app and scheduled sync task
# =============================================================================

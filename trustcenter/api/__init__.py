# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines an APIRouter mounted under /api by trustcenter.main:
#   - document_requests.py: public submission + admin history
#   - access.py: magic-link resolution and scoped downloads
#   - documents.py: public catalogue, public download, admin document CRUD
#   - admin.py: review queue, stats, org status, activity logs, admin users
#   - organizations.py: organization listing and edits
#   - webhooks.py: outbound webhook registry
#   - salesforce.py: OAuth connect flow, config, sync
#   - auth.py: admin bootstrap and identity
#   - content.py: certifications, document and control categories, controls,
#     security updates, branding settings
#   - subprocessors.py: subprocessor list, change subscriptions, admin edits
#   - contact.py: contact form, inbound-email threading, admin tickets
#   - export.py: admin JSON / CSV export of public content
#   - demo.py: demo-mode middleware
# =============================================================================

# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Core logic, separated from API handlers. Services take an AsyncSession and
# raise trustcenter.errors exceptions; routers translate nothing themselves.
#   - organizations.py: email domain → organization resolver
#   - access_requests.py: submit / approve / deny / batch workflow
#   - access.py: magic-link gateway
#   - magic_link.py: token + expiry utilities
#   - email.py, email_validation.py, notifications.py: outbound email
#   - activity.py: audit trail writer
#   - webhooks.py: signed outbound event fan-out
#   - salesforce.py: OAuth/PKCE + account sync
# =============================================================================

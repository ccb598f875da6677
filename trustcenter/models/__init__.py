# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, kept separate from the ORM models in
# trustcenter/db/models.py so magic-link tokens and webhook secrets are only
# exposed where a response model names them.
# =============================================================================

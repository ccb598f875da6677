# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration + beat schedule
#   - tasks.py: scheduled Salesforce organization sync
# =============================================================================

# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the one recurring job in the system: the Salesforce →
# organization status sync. On-demand syncs from the admin UI run inline in
# the API process; the scheduled run lives here so it survives API restarts
# and never competes with request handling.
#
# ARCHITECTURE:
# ┌────────────┐     ┌───────┐     ┌──────────────┐     ┌──────────┐
# │ celery beat│────▶│ Redis │────▶│ Celery Worker│────▶│ Postgres │
# │ (schedule) │     │(broker)│    │ (sync task)  │     │          │
# └────────────┘     └───────┘     └──────────────┘     └──────────┘
#                      db 0 (broker), db 1 (results)
#
# The beat schedule is only installed when
# SALESFORCE_SYNC_INTERVAL_MINUTES > 0.
# =============================================================================

from celery import Celery

from trustcenter.config import settings

celery_app = Celery(
    "trustcenter.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only; pickle can execute arbitrary code during deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after completion so a crashed worker re-queues the task.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # A full Account + Contact pull on a large org can take minutes.
    task_soft_time_limit=600,
    task_time_limit=900,

    # --- Results ---
    result_expires=3600,

    timezone="UTC",
    include=["trustcenter.workers.tasks"],
)

if settings.salesforce_sync_interval_minutes > 0:
    celery_app.conf.beat_schedule = {
        "salesforce-organization-sync": {
            "task": "sync_salesforce_organizations",
            "schedule": settings.salesforce_sync_interval_minutes * 60.0,
        },
    }

# =============================================================================
# Celery Task Definitions — Scheduled Salesforce Sync
# =============================================================================
#
# `sync_salesforce_organizations` pulls Accounts + Contacts from the active
# Salesforce connection and rewrites organization status (see
# services/salesforce.py).
#
# IMPORTANT: Celery workers are SYNCHRONOUS, the sync service is async.
# Each run drives the coroutine with asyncio.run() on a dedicated NullPool
# engine. The API's pooled engine is bound to a different event loop and
# must not be reused here.
#
# RETRY STRATEGY:
# max_retries=3, 60s apart. Handles Salesforce API hiccups and DB
# connection drops. "Not connected" is not an error: the run is skipped.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from trustcenter.db.engine import create_task_engine
from trustcenter.logging_config import configure_logging
from trustcenter.services import salesforce
from trustcenter.services.activity import SYNC_ACTOR, log_activity
from trustcenter.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_scheduled_sync() -> dict:
    """One sync pass in its own engine/session. Commits on success."""
    engine, session_factory = create_task_engine()
    try:
        async with session_factory() as session:
            if await salesforce.get_active_connection(session) is None:
                logger.info("No active Salesforce connection; skipping scheduled sync")
                return {"status": "skipped", "reason": "not connected"}

            summary = await salesforce.sync_organizations(session)
            await log_activity(
                session,
                SYNC_ACTOR,
                "salesforce_sync",
                "integration",
                entity_name="salesforce",
                new_value=summary,
                description=(
                    f"Scheduled Salesforce sync: {summary['updated_organizations']} "
                    f"organization(s) updated, {summary['blocked_organizations']} blocked"
                ),
            )
            await session.commit()
            return {"status": "completed", **summary}
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    name="sync_salesforce_organizations",
    max_retries=3,
    default_retry_delay=60,
)
def sync_salesforce_organizations(self) -> dict:
    configure_logging()
    task_id = self.request.id
    logger.info("[%s] Starting scheduled Salesforce sync", task_id)
    try:
        result = asyncio.run(run_scheduled_sync())
    except Exception as exc:
        logger.exception("[%s] Salesforce sync failed: %s", task_id, exc)
        raise self.retry(exc=exc)

    logger.info("[%s] Salesforce sync finished: %s", task_id, result)
    return result

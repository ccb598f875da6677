# =============================================================================
# Activity Log — Append-Only Audit Trail
# =============================================================================
#
# Records who did what to which entity: approvals, denials, status changes,
# webhook registrations, Salesforce syncs, plus system actions such as
# auto-approval (actor "system@auto-approve").
#
# DESIGN DECISION: A failed audit write must never undo the action it
# describes. Each entry is flushed inside its own SAVEPOINT; on failure only
# the savepoint rolls back and a warning is logged.
# =============================================================================

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trustcenter.config import settings
from trustcenter.db.models import ActivityLog
from trustcenter.services.magic_link import ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100
DATE_RANGE_LIST_LIMIT = 1000


@dataclass
class Actor:
    """Who performed an action, with request context when there is one."""

    admin_id: int | None
    email: str | None
    ip_address: str | None = None
    user_agent: str | None = None


SYSTEM_ACTOR = Actor(admin_id=None, email="system@auto-approve")
SYNC_ACTOR = Actor(admin_id=None, email="system@salesforce-sync")


async def log_activity(
    session: AsyncSession,
    actor: Actor,
    action_type: str,
    entity_type: str,
    *,
    entity_id: Any = None,
    entity_name: str | None = None,
    old_value: dict | None = None,
    new_value: dict | None = None,
    description: str | None = None,
) -> ActivityLog | None:
    """Write one entry. Returns None (and logs) instead of raising."""
    if not settings.activity_logging_enabled:
        return None

    entry = ActivityLog(
        admin_user_id=actor.admin_id,
        admin_email=actor.email,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_name=entity_name,
        old_value=old_value,
        new_value=new_value,
        description=description,
        ip_address=actor.ip_address,
        user_agent=(actor.user_agent or "")[:500] or None,
    )
    try:
        async with session.begin_nested():
            session.add(entry)
            await session.flush()
    except SQLAlchemyError as e:
        logger.warning("Failed to write activity log (%s %s): %s", action_type, entity_type, e)
        return None
    return entry


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


async def list_activity_logs(
    session: AsyncSession,
    *,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    entity_type: str | None = None,
    action_type: str | None = None,
    limit: int | None = None,
) -> list[ActivityLog]:
    """
    Newest first. `on_date` wins over a range; a range raises the default
    limit from 100 to 1000.
    """
    stmt = select(ActivityLog)
    if on_date is not None:
        start, end = _day_bounds(on_date)
        stmt = stmt.where(ActivityLog.created_at >= start, ActivityLog.created_at < end)
    elif start_date is not None or end_date is not None:
        if start_date is not None:
            stmt = stmt.where(ActivityLog.created_at >= _day_bounds(start_date)[0])
        if end_date is not None:
            stmt = stmt.where(ActivityLog.created_at < _day_bounds(end_date)[1])
    if entity_type:
        stmt = stmt.where(ActivityLog.entity_type == entity_type)
    if action_type:
        stmt = stmt.where(ActivityLog.action_type == action_type)

    if limit is None:
        has_range = start_date is not None or end_date is not None
        limit = DATE_RANGE_LIST_LIMIT if has_range else DEFAULT_LIST_LIMIT

    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def activity_stats(session: AsyncSession, days: int = 7) -> dict[str, Any]:
    """Counts over the last `days` days, grouped by date, action and entity."""
    since = datetime.now(UTC) - timedelta(days=days)
    result = await session.execute(
        select(ActivityLog.created_at, ActivityLog.action_type, ActivityLog.entity_type)
        .where(ActivityLog.created_at >= since)
    )
    rows = result.all()

    by_date: Counter[str] = Counter()
    by_action: Counter[str] = Counter()
    by_entity: Counter[str] = Counter()
    for created_at, action, entity in rows:
        by_date[ensure_utc(created_at).date().isoformat()] += 1
        by_action[action] += 1
        by_entity[entity] += 1

    total = await session.scalar(
        select(func.count()).select_from(ActivityLog).where(ActivityLog.created_at >= since)
    )
    return {
        "total_logs": total or 0,
        "by_date": dict(sorted(by_date.items())),
        "by_action": dict(by_action),
        "by_entity": dict(by_entity),
    }

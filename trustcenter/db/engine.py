# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy Engine
# FastAPI is async, so every query is awaited on an async engine:
# - asyncpg in deployment (PostgreSQL)
# - aiosqlite in tests and single-file demos
#
# SESSION LIFECYCLE:
# 1. FastAPI request arrives
# 2. `get_async_session` dependency creates a new session
# 3. Route handler (via services) uses the session
# 4. Session auto-commits on exit and is closed when the request completes
# 5. On exception, the transaction is rolled back
#
# COMMIT POLICY:
# Two session patterns exist in this codebase:
#
# 1. Dependency-injected (get_async_session via Depends):
#    Auto-commits when the handler returns. Workflow services commit
#    mid-handler when a side effect (email) must only happen after the
#    state transition is durable.
#
# 2. Self-managed (async_session_factory() directly):
#    Background tasks (webhook dispatch) and middleware that run outside the
#    request dependency lifecycle. These MUST commit explicitly.
#
# CELERY: Workers run each task with `asyncio.run()` on a short-lived engine
# from `create_task_engine()` (NullPool), since pooled asyncpg connections
# cannot cross event loops.
# =============================================================================

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from trustcenter.config import settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own BEGIN on SQLite so SAVEPOINT (begin_nested) works.

    The sqlite3 / aiosqlite drivers otherwise issue their own implicit
    transactions, which breaks nested transactions.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _build_engine(url: str, **overrides: Any) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": settings.debug}
    if not _is_sqlite(url) and "poolclass" not in overrides:
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 10
        kwargs["pool_pre_ping"] = True
    kwargs.update(overrides)
    engine = create_async_engine(url, **kwargs)
    if _is_sqlite(url):
        _enable_sqlite_savepoints(engine)
    return engine


# ---------------------------------------------------------------------------
# Async Engine + Session Factory
# ---------------------------------------------------------------------------
# expire_on_commit=False: loaded objects stay readable after commit. The
# workflow services commit and then keep using the request/org rows to build
# emails and responses.
# ---------------------------------------------------------------------------
async_engine = _build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def create_task_engine() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Engine + session factory for one Celery task run (no pooling)."""
    engine = _build_engine(settings.database_url, poolclass=NullPool)
    return engine, async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )


async def init_models() -> None:
    """Create missing tables (dev/demo convenience; production runs migrations)."""
    from trustcenter.db.models import Base

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session is committed when the handler returns and rolled back if it
    raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

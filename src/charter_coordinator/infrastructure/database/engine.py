"""Async engine, session factory and the per-request transaction.

Every request (and every cron tick) runs in one AsyncSession that commits
when the handler returns and rolls back if it raises. Services only flush;
they never commit on their own.

    @router.get("/bookings")
    async def list_bookings(session: AsyncSession = Depends(get_db_session)):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from charter_coordinator.config import get_settings
from charter_coordinator.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str, **overrides: Any) -> AsyncEngine:
    """Create an async engine with pool settings appropriate for the backend.

    SQLite (tests and the local simulation) uses SQLAlchemy's default pool;
    PostgreSQL gets the configured queue pool limits unless the caller
    passes its own ``poolclass`` (migrations use NullPool).
    """
    settings = get_settings()
    kwargs: dict[str, Any] = {"echo": settings.db_echo_sql}
    if not database_url.startswith("sqlite") and "poolclass" not in overrides:
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    kwargs.update(overrides)
    return create_async_engine(database_url, **kwargs)


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url)
        logger.info(
            "database.engine_created",
            backend=_engine.dialect.name,
            pool_size=settings.db_pool_size,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide sessionmaker. Instances stay usable after commit."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; commit on success, roll back on any exception."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables in development. Other environments run Alembic."""
    from charter_coordinator.infrastructure.database.orm_models import Base

    engine = get_engine()
    settings = get_settings()

    if settings.is_development:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database.schema_created", tables=len(Base.metadata.tables))
    else:
        logger.info("database.schema_managed_by_alembic", env=settings.app_env)


async def close_db() -> None:
    """Dispose of the pool and forget the singletons."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None

"""Database engine, session factory and the request-scoped session dependency."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from pipevault.config import settings

ASYNC_SCHEMES = ("postgres://", "postgresql://")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def get_async_database_url(url: str) -> str:
    """Rewrite a PostgreSQL URL to use the asyncpg driver.

    Hosted Postgres providers hand out ``postgres://`` or ``postgresql://``
    URLs; asyncpg needs ``postgresql+asyncpg://``. URLs that already name a
    driver (or another database) are returned unchanged.
    """
    for scheme in ASYNC_SCHEMES:
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme):]
    return url


def build_engine(url: str | None = None, pooled: bool = True) -> AsyncEngine:
    """Create an async engine for the configured database.

    Args:
        url: Database URL (defaults to ``settings.database_url``)
        pooled: Keep a connection pool. Celery tasks pass False because each
            run gets a fresh event loop and asyncpg connections cannot cross
            loops.
    """
    options: dict[str, object] = {"echo": settings.debug, "pool_pre_ping": True}
    if pooled:
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    else:
        options["poolclass"] = NullPool
    return create_async_engine(
        get_async_database_url(url or settings.database_url), **options
    )


async_engine = build_engine()

async_session_factory = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session.

    Commits when the handler returns and rolls back on any exception, so an
    approval that fails halfway leaves no rack or request writes behind.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

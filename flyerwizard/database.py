"""
database.py — async engine, session factory and the request-scoped session dependency.

Postgres via asyncpg in deployment. A sqlite+aiosqlite URL also works for local runs; SQLite
has no server-side connection pool, so the pool settings only apply to other backends.

Two session scopes:
  - get_db             one AsyncSession per HTTP request, passed to WizardService and store.py.
                       confirm commits inside it, leaving nothing for the trailing commit.
  - AsyncSessionLocal  handed to ProductSearchService, which opens a session per search so the
                       per-item searches at wizard start run concurrently.
"""
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from flyerwizard.config import settings


class Base(DeclarativeBase):
    """Declarative base for flyerwizard/models/. Lives here so alembic/env.py can import it."""
    pass


def engine_options(database_url: str) -> dict[str, Any]:
    """create_async_engine keyword arguments for the configured backend."""
    options: dict[str, Any] = {"echo": settings.db_echo}
    if database_url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    return options


async_engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,   # rows stay readable after commit
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Commit when the route returns, roll back when it raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

"""
Test configuration for flyerwizard tests.

sys.path is configured so 'from flyerwizard...' resolves whether pytest is run from the
repository root or from flyerwizard/.

Shared fixtures:
  - fake_redis        in-memory stand-in for redis.asyncio.Redis (the subset cache.py uses)
  - engine / db       SQLite (aiosqlite) database file per test with every table created
  - catalog           seeded stores, flyers, offers and a shopping list with expired items
"""
import sys
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

_package_dir = Path(__file__).parent.parent        # .../flyerwizard/
_project_root = _package_dir.parent                # repository root

if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import flyerwizard.models  # noqa: E402,F401  (registers tables on Base.metadata)
from flyerwizard.database import Base  # noqa: E402
from flyerwizard.tests.factories import Catalog, seed_catalog  # noqa: E402


class FakeRedis:
    """
    Dict-backed async Redis double. Values are stored as str (decode_responses=True);
    TTLs are recorded in `ttls` but never expire on their own.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value) -> bool:
        self.store[key] = str(value)
        self.ttls.pop(key, None)
        return True

    async def setex(self, key: str, ttl: int, value) -> bool:
        self.store[key] = str(value)
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.store)

    async def expire(self, key: str, ttl: int) -> bool:
        if key not in self.store:
            return False
        self.ttls[key] = ttl
        return True

    async def incr(self, key: str) -> int:
        value = int(self.store.get(key, "0")) + 1
        self.store[key] = str(value)
        return value

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions each get their own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'flyerwizard.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(session_factory) -> Catalog:
    async with session_factory() as session:
        seeded = await seed_catalog(session)
        await session.commit()
    return seeded

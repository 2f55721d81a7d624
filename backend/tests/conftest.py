"""Shared test fixtures.

The relational store is an in-memory SQLite database (aiosqlite) and Redis
is mocked. Tests never require running instances of external services.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "development")

import itertools
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db, get_redis, get_save_lock, get_session_factory
from app.core.auth import require_session
from app.core.database import Base
from app.main import app
from app.models import Workflow
from app.services.save_lock import SaveLock
from app.services.table_store import RowNotFound, StoreError


class RecordingStore:
    """In-memory TableStore that records every call.

    ``fail_on`` makes the matching call raise StoreError: either an operation
    name ("update") or an (operation, column) pair for remove_in.
    """

    _ids = itertools.count(1000)

    def __init__(self, table: str, rows: list[dict[str, Any]] | None = None):
        self.table = table
        self.rows: dict[int, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set = set()
        # scope passed to each remove_in call
        self.scopes: list[dict] = []
        for row in rows or []:
            self.rows[row["id"]] = dict(row)

    def _check(self, *key) -> None:
        if key[0] in self.fail_on or key in self.fail_on:
            raise StoreError(self.table, key[0], "injected failure")

    def writes(self, operation: str | None = None) -> list[tuple]:
        writes = [c for c in self.calls if c[0] != "list"]
        if operation is not None:
            writes = [c for c in writes if c[0] == operation]
        return writes

    def _in_scope(self, row, scope) -> bool:
        return all(row.get(k) == v for k, v in (scope or {}).items())

    async def list(self, filters=None, order=None):
        self.calls.append(("list", dict(filters or {})))
        self._check("list")
        return [dict(r) for r in self.rows.values() if self._in_scope(r, filters)]

    async def insert(self, row):
        self.calls.append(("insert", dict(row)))
        self._check("insert")
        stored = {**row, "id": next(self._ids)}
        self.rows[stored["id"]] = stored
        return dict(stored)

    async def update(self, row_id, patch, scope=None):
        self.calls.append(("update", row_id, dict(patch)))
        self._check("update")
        if row_id not in self.rows or not self._in_scope(self.rows[row_id], scope):
            raise RowNotFound(self.table, row_id)
        self.rows[row_id].update(patch)
        return dict(self.rows[row_id])

    async def remove(self, row_id):
        self.calls.append(("remove", row_id))
        self._check("remove")
        self.rows.pop(row_id, None)

    async def remove_in(self, column, values, scope=None):
        values = list(values)
        self.calls.append(("remove_in", column, sorted(values)))
        self.scopes.append(dict(scope or {}))
        self._check("remove_in", column)
        for row_id in [
            i for i, r in self.rows.items() if r.get(column) in values and self._in_scope(r, scope)
        ]:
            del self.rows[row_id]


@pytest.fixture
def store_factory():
    return RecordingStore


@pytest.fixture
async def db_engine():
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    """Provide a test database session for direct use in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def workflow(db_session: AsyncSession) -> Workflow:
    wf = Workflow(title="Invoice approval", domain="Finance")
    db_session.add(wf)
    await db_session.commit()
    await db_session.refresh(wf)
    return wf


@pytest.fixture
def mock_redis():
    redis = AsyncMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    redis.ping.return_value = True
    return redis


@pytest.fixture
async def client(session_factory, mock_redis) -> AsyncClient:
    """Provide an httpx AsyncClient wired to the FastAPI test app.

    Route handlers and stores get their own sessions from the test engine.
    The access gate is open unless a test removes the require_session override.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_redis] = lambda: mock_redis
    app.dependency_overrides[get_save_lock] = lambda: SaveLock(mock_redis, ttl=5)
    app.dependency_overrides[require_session] = lambda: {"sub": "test"}

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    for dep in (get_db, get_session_factory, get_redis, get_save_lock, require_session):
        app.dependency_overrides.pop(dep, None)

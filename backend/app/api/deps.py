"""Dependency injection for FastAPI routes.

All services and sessions are provided via Depends() from this module.
Route handlers never instantiate services directly.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import require_session  # noqa: F401
from app.core.config import settings
from app.core.database import Base, async_session
from app.core.database import get_db as _get_db
from app.core.redis import get_redis as _get_redis
from app.models import Edge, Node, NodeError, Problem, Workflow
from app.services.rest_store import RestTableStore, make_rest_client
from app.services.save_lock import SaveLock
from app.services.table_store import ScopedStore, SqlTableStore, TableStore
from app.services.workflow_generator import WorkflowGenerator, make_llm_client
from app.services.workflow_importer import WorkflowImporter

_rest_client: httpx.AsyncClient | None = None


@dataclass(frozen=True)
class NodeScope:
    workflow_id: int
    node_id: int


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in _get_db():
        yield session


async def get_redis():
    """Provide the Redis client."""
    return await _get_redis()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


def get_rest_client() -> httpx.AsyncClient:
    global _rest_client
    if _rest_client is None:
        _rest_client = make_rest_client()
    return _rest_client


async def close_rest_client() -> None:
    global _rest_client
    if _rest_client is not None:
        await _rest_client.aclose()
        _rest_client = None


def make_table_store(
    model: type[Base], session_factory: async_sessionmaker[AsyncSession]
) -> TableStore:
    """Store for one table on the configured backend."""
    if settings.store.store_backend == "rest":
        return RestTableStore(get_rest_client(), model.__tablename__)
    return SqlTableStore(session_factory, model)


async def get_workflow_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> TableStore:
    return make_table_store(Workflow, session_factory)


async def get_node_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> TableStore:
    return make_table_store(Node, session_factory)


async def get_edge_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> TableStore:
    return make_table_store(Edge, session_factory)


async def get_problem_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ScopedStore[int]:
    """Problems of one workflow: open first, newest first."""
    return ScopedStore(
        make_table_store(Problem, session_factory),
        lambda workflow_id: {"workflow_id": workflow_id},
        order=[("is_solved", False), ("reported_at", True)],
    )


async def get_node_error_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ScopedStore[NodeScope]:
    """Errors of one node: unfixed first, newest first."""
    return ScopedStore(
        make_table_store(NodeError, session_factory),
        lambda scope: {"workflow_id": scope.workflow_id, "node_id": scope.node_id},
        order=[("is_fixed", False), ("reported_at", True)],
    )


async def get_save_lock(redis=Depends(get_redis)) -> SaveLock:
    return SaveLock(redis=redis)


async def get_workflow_generator() -> AsyncGenerator[WorkflowGenerator, None]:
    async with make_llm_client() as client:
        yield WorkflowGenerator(client)


async def get_workflow_importer(
    workflow_store: TableStore = Depends(get_workflow_store),
    node_store: TableStore = Depends(get_node_store),
    edge_store: TableStore = Depends(get_edge_store),
) -> WorkflowImporter:
    return WorkflowImporter(workflow_store, node_store, edge_store)

"""Issue endpoints: problems per workflow, errors per node.

Both resources go through a ScopedStore so the scope columns are applied to
every list and merged into every created row.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import NodeScope, get_db, get_node_error_store, get_problem_store
from app.api.routes.workflows import get_workflow_or_404
from app.schemas.issue import (
    NodeErrorCreate,
    NodeErrorResponse,
    NodeErrorUpdate,
    ProblemCreate,
    ProblemResponse,
    ProblemUpdate,
)
from app.services.table_store import Row, ScopedStore, StoreError

router = APIRouter()


async def _scoped_rows(store: ScopedStore, scope) -> list[Row]:
    try:
        return await store.list(scope)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


async def _require_in_scope(store: ScopedStore, scope, row_id: int) -> None:
    if not any(row["id"] == row_id for row in await _scoped_rows(store, scope)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")


async def _call(coro):
    try:
        return await coro
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


# --- Problems ---


@router.get("/{workflow_id}/problems", response_model=list[ProblemResponse])
async def list_problems(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
    store: ScopedStore[int] = Depends(get_problem_store),
):
    await get_workflow_or_404(db, workflow_id)
    return await _scoped_rows(store, workflow_id)


@router.post(
    "/{workflow_id}/problems",
    response_model=ProblemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_problem(
    workflow_id: int,
    body: ProblemCreate,
    db: AsyncSession = Depends(get_db),
    store: ScopedStore[int] = Depends(get_problem_store),
):
    await get_workflow_or_404(db, workflow_id)
    return await _call(store.create(workflow_id, body.model_dump()))


@router.patch("/{workflow_id}/problems/{problem_id}", response_model=ProblemResponse)
async def update_problem(
    workflow_id: int,
    problem_id: int,
    body: ProblemUpdate,
    store: ScopedStore[int] = Depends(get_problem_store),
):
    await _require_in_scope(store, workflow_id, problem_id)
    return await _call(store.update(problem_id, body.model_dump(exclude_unset=True)))


@router.delete(
    "/{workflow_id}/problems/{problem_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_problem(
    workflow_id: int,
    problem_id: int,
    store: ScopedStore[int] = Depends(get_problem_store),
):
    await _require_in_scope(store, workflow_id, problem_id)
    await _call(store.remove(problem_id))


# --- Node errors ---


@router.get(
    "/{workflow_id}/nodes/{node_id}/errors", response_model=list[NodeErrorResponse]
)
async def list_node_errors(
    workflow_id: int,
    node_id: int,
    store: ScopedStore[NodeScope] = Depends(get_node_error_store),
):
    return await _scoped_rows(store, NodeScope(workflow_id, node_id))


@router.post(
    "/{workflow_id}/nodes/{node_id}/errors",
    response_model=NodeErrorResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_node_error(
    workflow_id: int,
    node_id: int,
    body: NodeErrorCreate,
    db: AsyncSession = Depends(get_db),
    store: ScopedStore[NodeScope] = Depends(get_node_error_store),
):
    await get_workflow_or_404(db, workflow_id)
    return await _call(store.create(NodeScope(workflow_id, node_id), body.model_dump()))


@router.patch(
    "/{workflow_id}/nodes/{node_id}/errors/{error_id}", response_model=NodeErrorResponse
)
async def update_node_error(
    workflow_id: int,
    node_id: int,
    error_id: int,
    body: NodeErrorUpdate,
    store: ScopedStore[NodeScope] = Depends(get_node_error_store),
):
    await _require_in_scope(store, NodeScope(workflow_id, node_id), error_id)
    return await _call(store.update(error_id, body.model_dump(exclude_unset=True)))


@router.delete(
    "/{workflow_id}/nodes/{node_id}/errors/{error_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_node_error(
    workflow_id: int,
    node_id: int,
    error_id: int,
    store: ScopedStore[NodeScope] = Depends(get_node_error_store),
):
    await _require_in_scope(store, NodeScope(workflow_id, node_id), error_id)
    await _call(store.remove(error_id))

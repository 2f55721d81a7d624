"""Canvas endpoints: load the styled graph, create nodes, save edits.

The browser keeps the editing history; each request rebuilds a
CanvasSession from the store (load, node creation) or from the posted
canvas (save) and lets the sync engine converge the store.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_edge_store, get_node_store, get_save_lock
from app.api.routes.workflows import get_workflow_or_404
from app.core.logging_config import bind_workflow_context
from app.schemas.canvas import (
    CanvasResponse,
    CanvasSaveRequest,
    NodeCreateRequest,
    NodeCreateResponse,
    SaveResponse,
)
from app.services.canvas_session import (
    CanvasSession,
    apply_canvas_state,
    edge_payload,
    foreign_node_ids,
    node_payload,
)
from app.services.save_lock import SaveLock, SaveLockHeld
from app.services.sync_engine import SaveInProgressError, SyncError
from app.services.table_store import StoreError, TableStore

router = APIRouter()
logger = structlog.stdlib.get_logger(__name__)


def _bad_gateway(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


async def _open_session(
    workflow_id: int, node_store: TableStore, edge_store: TableStore
) -> CanvasSession:
    try:
        return await CanvasSession.open(workflow_id, node_store, edge_store)
    except StoreError as exc:
        raise _bad_gateway(exc) from exc


@router.get("/{workflow_id}/canvas", response_model=CanvasResponse)
async def get_canvas(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
    node_store: TableStore = Depends(get_node_store),
    edge_store: TableStore = Depends(get_edge_store),
):
    await get_workflow_or_404(db, workflow_id)
    bind_workflow_context(workflow_id)
    session = await _open_session(workflow_id, node_store, edge_store)
    return CanvasResponse(**session.to_payload())


@router.post(
    "/{workflow_id}/canvas/nodes",
    response_model=NodeCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_node(
    workflow_id: int,
    body: NodeCreateRequest,
    db: AsyncSession = Depends(get_db),
    node_store: TableStore = Depends(get_node_store),
    edge_store: TableStore = Depends(get_edge_store),
):
    await get_workflow_or_404(db, workflow_id)
    bind_workflow_context(workflow_id)
    session = await _open_session(workflow_id, node_store, edge_store)
    try:
        node = await session.add_node(body.kind)
    except SyncError as exc:
        raise _bad_gateway(exc) from exc

    chained = session.model.incident_edges(node.id)
    return NodeCreateResponse(
        node=node_payload(node),
        edge=edge_payload(chained[0]) if chained else None,
    )


@router.post("/{workflow_id}/canvas/save", response_model=SaveResponse)
async def save_canvas(
    workflow_id: int,
    body: CanvasSaveRequest,
    db: AsyncSession = Depends(get_db),
    node_store: TableStore = Depends(get_node_store),
    edge_store: TableStore = Depends(get_edge_store),
    save_lock: SaveLock = Depends(get_save_lock),
):
    await get_workflow_or_404(db, workflow_id)
    bind_workflow_context(workflow_id)

    posted_ids = [n.id for n in body.nodes] + body.deleted_node_ids
    try:
        foreign = await foreign_node_ids(workflow_id, posted_ids, node_store)
    except StoreError as exc:
        raise _bad_gateway(exc) from exc
    if foreign:
        logger.warning("foreign_node_ids_rejected", workflow_id=workflow_id, node_ids=foreign)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Nodes {foreign} do not belong to workflow {workflow_id}",
        )

    session = apply_canvas_state(
        workflow_id,
        nodes=[n.model_dump() for n in body.nodes],
        edges=[e.model_dump() for e in body.edges],
        node_store=node_store,
        edge_store=edge_store,
        deleted_node_ids=body.deleted_node_ids,
        deleted_edge_ids=body.deleted_edge_ids,
    )

    try:
        async with save_lock.hold(workflow_id):
            report = await session.save()
    except (SaveLockHeld, SaveInProgressError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SyncError as exc:
        raise _bad_gateway(exc) from exc

    return SaveResponse(
        nodes_updated=len(report.nodes_updated),
        nodes_deleted=report.nodes_deleted,
        edges_inserted=report.edges_inserted,
        edges_updated=report.edges_updated,
        edges_deleted=report.buffered_edges_deleted + report.edges_deleted,
        edges_skipped=report.edges_skipped,
        nodes_restored=report.nodes_restored,
    )

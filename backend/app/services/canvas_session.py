"""One editing session over a workflow canvas.

Wires the graph model, history stack, mutation surface and sync engine
together for a single workflow. The deletion buffers are shared between
the editor (which fills them) and the engine (which flushes them).
"""

from collections.abc import Iterable
from typing import Any

import structlog

from app.services.canvas_editor import CanvasEditor, EdgeLabelEditor
from app.services.graph_model import (
    DEFAULT_KIND,
    CanvasEdge,
    CanvasNode,
    GraphModel,
    edge_style_for,
    is_synthetic_id,
)
from app.services.history import HistoryStack, history_action_for
from app.services.sync_engine import DeletionBuffers, SyncEngine, SyncReport
from app.services.table_store import TableStore

logger = structlog.stdlib.get_logger(__name__)


def node_payload(node: CanvasNode) -> dict[str, Any]:
    return {
        "id": node.id,
        "title": node.title,
        "kind": node.kind,
        "x": node.x,
        "y": node.y,
        "details": node.details.to_raw(),
        "status": node.status,
        "style": node.style.as_css(),
    }


def edge_payload(edge: CanvasEdge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "label": edge.label,
        "animated": edge.animated,
        "db_id": edge.db_id,
        "style": edge.style.as_css(),
    }


class CanvasSession:
    def __init__(
        self,
        workflow_id: int,
        model: GraphModel,
        node_store: TableStore,
        edge_store: TableStore,
        deletions: DeletionBuffers | None = None,
        history_capacity: int | None = None,
    ):
        self.workflow_id = workflow_id
        self.model = model
        self.history = HistoryStack(model, capacity=history_capacity)
        self.engine = SyncEngine(
            workflow_id,
            model,
            node_store,
            edge_store,
            deletions,
            on_node_rekeyed=self.history.rekey_node,
        )
        self.editor = CanvasEditor(model, self.history, self.engine.deletions)
        self.label_editor = EdgeLabelEditor(self.editor)

    @classmethod
    async def open(
        cls,
        workflow_id: int,
        node_store: TableStore,
        edge_store: TableStore,
        history_capacity: int | None = None,
    ) -> "CanvasSession":
        """Load the workflow's rows from the store and start a fresh history."""
        scope = {"workflow_id": workflow_id}
        node_rows = await node_store.list(scope)
        edge_rows = await edge_store.list(scope)
        model = GraphModel.load_from(node_rows, edge_rows)
        logger.info(
            "canvas_opened",
            workflow_id=workflow_id,
            node_count=len(model.nodes),
            edge_count=len(model.edges),
        )
        return cls(
            workflow_id, model, node_store, edge_store, history_capacity=history_capacity
        )

    @property
    def is_saving(self) -> bool:
        return self.engine.is_saving

    @property
    def deletions(self) -> DeletionBuffers:
        return self.engine.deletions

    async def add_node(self, kind: str = DEFAULT_KIND) -> CanvasNode:
        """Persist the node row first, then add it locally under its real id.

        The edge chaining it to the previous node stays local until the next
        save inserts it.
        """
        title, x, y = self.editor.placement_for(kind)
        node_id = await self.engine.create_node(kind, title, x, y)
        return self.editor.add_node(kind, node_id=node_id, title=title)

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def handle_key(
        self, key: str, *, ctrl: bool = False, meta: bool = False, shift: bool = False
    ) -> bool:
        action = history_action_for(key, ctrl=ctrl, meta=meta, shift=shift)
        if action == "undo":
            return self.undo()
        if action == "redo":
            return self.redo()
        return False

    async def save(self) -> SyncReport:
        return await self.engine.save()

    def to_payload(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "nodes": [node_payload(n) for n in self.model.nodes],
            "edges": [edge_payload(e) for e in self.model.edges],
        }


async def foreign_node_ids(
    workflow_id: int, node_ids: Iterable[int], node_store: TableStore
) -> list[int]:
    """Persisted ids among ``node_ids`` whose rows belong to another workflow.

    Ids with no row at all are not foreign: save re-creates them.
    """
    candidates = {i for i in node_ids if not is_synthetic_id(i)}
    if not candidates:
        return []
    own = {int(row["id"]) for row in await node_store.list({"workflow_id": workflow_id})}
    foreign = []
    for node_id in sorted(candidates - own):
        if await node_store.list({"id": node_id}):
            foreign.append(node_id)
    return foreign


def apply_canvas_state(
    workflow_id: int,
    nodes: Iterable[dict[str, Any]],
    edges: Iterable[dict[str, Any]],
    node_store: TableStore,
    edge_store: TableStore,
    deleted_node_ids: Iterable[int] = (),
    deleted_edge_ids: Iterable[int] = (),
) -> CanvasSession:
    """Rebuild a session from a canvas posted by a client.

    The client owns the editing history; the server only needs the current
    graph and the persisted ids the client deleted since its last save.
    """
    model = GraphModel()
    for raw in nodes:
        model.add_node(CanvasNode.from_row(raw))

    for raw in edges:
        source, target = int(raw["source"]), int(raw["target"])
        db_id = raw.get("db_id")
        model.add_edge(
            CanvasEdge(
                id=str(raw.get("id") or model.next_edge_id()),
                source=source,
                target=target,
                label=raw.get("label") or None,
                animated=bool(raw.get("animated", False)),
                db_id=int(db_id) if db_id is not None else None,
                style=edge_style_for(model.kind_of(source)),
            )
        )

    deletions = DeletionBuffers(
        node_ids={int(i) for i in deleted_node_ids},
        edge_ids={int(i) for i in deleted_edge_ids},
    )
    return CanvasSession(workflow_id, model, node_store, edge_store, deletions)

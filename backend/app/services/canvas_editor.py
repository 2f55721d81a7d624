"""Local mutation surface of the canvas.

Translates user actions (add, move, delete, connect, relabel...) into
GraphModel mutations. Every mutation records a history snapshot BEFORE the
change is applied and deletions of persisted rows are queued in the
deletion buffers for the next save. Nothing here talks to the store.

Operations never raise for unknown ids: they log and return None/False.
"""

from typing import Any

import structlog

from app.services.graph_model import (
    DEFAULT_KIND,
    CanvasEdge,
    CanvasNode,
    GraphModel,
    NodeDetails,
    edge_style_for,
    is_synthetic_id,
)
from app.services.history import HistoryStack
from app.services.sync_engine import DeletionBuffers

logger = structlog.stdlib.get_logger(__name__)

FIRST_NODE_POSITION = (250.0, 250.0)
NEW_NODE_OFFSET = (0.0, 120.0)


class CanvasEditor:
    def __init__(
        self,
        model: GraphModel,
        history: HistoryStack,
        deletions: DeletionBuffers,
    ):
        self._model = model
        self._history = history
        self._deletions = deletions

    @property
    def model(self) -> GraphModel:
        return self._model

    def placement_for(self, kind: str) -> tuple[str, float, float]:
        """Default title and position for the next node of ``kind``."""
        previous = self._model.last_node()
        if previous is None:
            x, y = FIRST_NODE_POSITION
        else:
            x = previous.x + NEW_NODE_OFFSET[0]
            y = previous.y + NEW_NODE_OFFSET[1]
        return f"New {kind}", x, y

    # ── Nodes ─────────────────────────────────────────────────────────────

    def add_node(
        self,
        kind: str = DEFAULT_KIND,
        node_id: int | None = None,
        title: str | None = None,
    ) -> CanvasNode:
        """Append a node, chained from the most recently added node if any.

        Without ``node_id`` the node gets a synthetic id; callers that persist
        eagerly pass the id returned by the store.
        """
        default_title, x, y = self.placement_for(kind)
        previous = self._model.last_node()

        self._history.record()
        node = CanvasNode(
            id=node_id if node_id is not None else self._model.next_synthetic_id(),
            title=title or default_title,
            kind=kind,
            x=x,
            y=y,
            details=NodeDetails(golden_path=False),
        )
        self._model.add_node(node)

        if previous is not None:
            self._model.add_edge(
                CanvasEdge(
                    id=self._model.next_edge_id(),
                    source=previous.id,
                    target=node.id,
                    style=edge_style_for(previous.kind),
                )
            )
        return node

    def move_node(self, node_id: int, x: float, y: float) -> bool:
        node = self._require_node(node_id, "move_node")
        if node is None:
            return False
        self._history.record()
        node.x, node.y = float(x), float(y)
        return True

    def rename_node(self, node_id: int, title: str) -> bool:
        node = self._require_node(node_id, "rename_node")
        if node is None:
            return False
        self._history.record()
        node.title = title
        return True

    def set_node_kind(self, node_id: int, kind: str) -> bool:
        """Change the kind and re-style the node plus every edge leaving it."""
        node = self._require_node(node_id, "set_node_kind")
        if node is None:
            return False
        self._history.record()
        node.kind = kind
        node.restyle()
        self._model.restyle_outgoing(node_id)
        return True

    def set_golden_path(self, node_id: int, golden_path: bool) -> bool:
        node = self._require_node(node_id, "set_golden_path")
        if node is None:
            return False
        self._history.record()
        node.details.golden_path = bool(golden_path)
        node.restyle()
        return True

    def update_details(self, node_id: int, patch: dict[str, Any]) -> bool:
        node = self._require_node(node_id, "update_details")
        if node is None:
            return False
        self._history.record()
        node.details = node.details.merged(patch)
        node.restyle()
        return True

    def delete_node(self, node_id: int) -> bool:
        """Remove a node and its incident edges; queue persisted ids for deletion."""
        if self._require_node(node_id, "delete_node") is None:
            return False
        self._history.record()
        _, removed_edges = self._model.remove_node(node_id)
        if not is_synthetic_id(node_id):
            self._deletions.node_ids.add(node_id)
        for edge in removed_edges:
            if edge.db_id is not None:
                self._deletions.edge_ids.add(edge.db_id)
        logger.debug(
            "node_deleted_locally",
            node_id=node_id,
            removed_edges=[e.id for e in removed_edges],
        )
        return True

    # ── Edges ─────────────────────────────────────────────────────────────

    def connect(
        self, source_id: int, target_id: int, label: str | None = None
    ) -> CanvasEdge | None:
        """Create an edge styled by the source kind.

        An ordered pair holds at most one edge: connecting it again returns the
        existing edge unchanged.
        """
        if not (self._model.has_node(source_id) and self._model.has_node(target_id)):
            logger.warning("connect_unknown_endpoint", source=source_id, target=target_id)
            return None
        existing = self._model.find_edge(source_id, target_id)
        if existing is not None:
            return existing

        self._history.record()
        return self._model.add_edge(
            CanvasEdge(
                id=self._model.next_edge_id(),
                source=source_id,
                target=target_id,
                label=label or None,
                style=edge_style_for(self._model.kind_of(source_id)),
            )
        )

    def relabel_edge(self, edge_id: str, label: str | None) -> bool:
        edge = self._require_edge(edge_id, "relabel_edge")
        if edge is None:
            return False
        self._history.record()
        edge.label = label or None
        return True

    def set_edge_animated(self, edge_id: str, animated: bool) -> bool:
        edge = self._require_edge(edge_id, "set_edge_animated")
        if edge is None:
            return False
        self._history.record()
        edge.animated = bool(animated)
        return True

    def delete_edge(self, edge_id: str) -> bool:
        edge = self._require_edge(edge_id, "delete_edge")
        if edge is None:
            return False
        self._history.record()
        self._model.remove_edge(edge_id)
        if edge.db_id is not None:
            self._deletions.edge_ids.add(edge.db_id)
        return True

    # ── Helpers ───────────────────────────────────────────────────────────

    def _require_node(self, node_id: int, op: str) -> CanvasNode | None:
        node = self._model.node(node_id)
        if node is None:
            logger.warning("unknown_node", op=op, node_id=node_id)
        return node

    def _require_edge(self, edge_id: str, op: str) -> CanvasEdge | None:
        edge = self._model.edge(edge_id)
        if edge is None:
            logger.warning("unknown_edge", op=op, edge_id=edge_id)
        return edge


class EdgeLabelEditor:
    """Inline label editor opened by double-clicking an edge.

    Enter and focus loss commit the typed value; Escape closes the editor
    without touching the model.
    """

    def __init__(self, editor: CanvasEditor):
        self._editor = editor
        self.edge_id: str | None = None
        self.value = ""

    @property
    def is_open(self) -> bool:
        return self.edge_id is not None

    def begin(self, edge_id: str) -> bool:
        edge = self._editor.model.edge(edge_id)
        if edge is None:
            return False
        self.edge_id = edge_id
        self.value = edge.label or ""
        return True

    def confirm(self) -> bool:
        return self._commit()

    def blur(self) -> bool:
        return self._commit()

    def cancel(self) -> None:
        self._close()

    def _commit(self) -> bool:
        if self.edge_id is None:
            return False
        committed = self._editor.relabel_edge(self.edge_id, self.value)
        self._close()
        return committed

    def _close(self) -> None:
        self.edge_id = None
        self.value = ""

"""Canvas graph model.

Holds the live node/edge collections of one workflow and derives their
presentation attributes:
1. Accent colour from the node kind (left border of the node, edge stroke)
2. Dark background for nodes flagged as part of the golden path

Nodes are keyed by integer id. Ids <= 0 are client-only placeholders
(synthetic ids) that have not been persisted yet. Edges are keyed by a
client id string; their logical identity for reconciliation is the
``"{source}_{target}"`` key, never the surrogate database id.
"""

import copy
import enum
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_COORDINATE = 100.0
DEFAULT_TITLE = "Node"
DEFAULT_KIND = "action"
FALLBACK_ACCENT = "#111827"


class NodeKind(str, enum.Enum):
    ACTION = "action"
    DECISION = "decision"
    HUMAN = "human"
    EXCEPTION = "exception"
    TERMINAL = "terminal"


ACCENT_COLORS: dict[str, str] = {
    NodeKind.ACTION.value: "#2563eb",
    NodeKind.DECISION.value: "#d97706",
    NodeKind.HUMAN.value: "#7c3aed",
    NodeKind.EXCEPTION.value: "#ef4444",
    NodeKind.TERMINAL.value: "#10b981",
}


@dataclass(frozen=True)
class NodeStyle:
    accent: str
    background: str
    color: str
    border: str

    def as_css(self) -> dict[str, Any]:
        return {
            "background": self.background,
            "color": self.color,
            "border": self.border,
            "borderLeft": f"6px solid {self.accent}",
            "paddingLeft": 10,
            "boxSizing": "border-box",
        }


@dataclass(frozen=True)
class EdgeStyle:
    stroke: str
    stroke_width: float = 1.5

    def as_css(self) -> dict[str, Any]:
        return {"stroke": self.stroke, "strokeWidth": self.stroke_width}


def accent_color_for(kind: Any) -> str:
    """Accent colour for a node kind. Unknown or non-string kinds get the fallback."""
    if not isinstance(kind, str):
        return FALLBACK_ACCENT
    return ACCENT_COLORS.get(kind.lower(), FALLBACK_ACCENT)


def style_for(kind: Any, golden_path: bool = False) -> NodeStyle:
    """Node style from kind and golden-path flag. Total, never raises."""
    accent = accent_color_for(kind)
    if golden_path:
        return NodeStyle(
            accent=accent,
            background="#111827",
            color="#ffffff",
            border="1px solid #111827",
        )
    return NodeStyle(
        accent=accent,
        background="#ffffff",
        color="#111827",
        border="1px solid #e5e7eb",
    )


def edge_style_for(kind: Any) -> EdgeStyle:
    """Edge stroke follows the accent of its source node's kind."""
    return EdgeStyle(stroke=accent_color_for(kind))


def edge_key(source: int, target: int) -> str:
    return f"{source}_{target}"


def is_synthetic_id(node_id: int) -> bool:
    return node_id <= 0


# wire name -> (attribute, accepted type)
_RESERVED_DETAIL_KEYS: dict[str, tuple[str, type]] = {
    "goldenPath": ("golden_path", bool),
    "rules": ("rules", list),
    "runbook": ("runbook", str),
    "owner": ("owner", str),
    "criticality": ("criticality", str),
    "timers": ("timers", dict),
}


@dataclass
class NodeDetails:
    """Typed view over a node's ``details`` JSON bag.

    Known keys get attributes; everything else is kept verbatim in ``extra``
    so fields written by newer clients survive a load/save cycle.
    """

    golden_path: bool = False
    rules: list[Any] | None = None
    runbook: str | None = None
    owner: str | None = None
    criticality: str | None = None
    timers: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> "NodeDetails":
        """Parse a details bag. Never raises; wrong-typed known keys go to ``extra``."""
        if not isinstance(raw, dict):
            return cls()
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in raw.items():
            reserved = _RESERVED_DETAIL_KEYS.get(key)
            if reserved is not None and isinstance(value, reserved[1]):
                values[reserved[0]] = copy.deepcopy(value)
            else:
                extra[key] = copy.deepcopy(value)
        return cls(**values, extra=extra)

    def to_raw(self) -> dict[str, Any]:
        raw = copy.deepcopy(self.extra)
        raw["goldenPath"] = self.golden_path
        for wire_name, (attr, _) in _RESERVED_DETAIL_KEYS.items():
            if attr == "golden_path":
                continue
            value = getattr(self, attr)
            if value is not None:
                raw[wire_name] = copy.deepcopy(value)
        return raw

    def merged(self, patch: dict[str, Any]) -> "NodeDetails":
        return NodeDetails.from_raw({**self.to_raw(), **patch})


def _coordinate(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return DEFAULT_COORDINATE


@dataclass
class CanvasNode:
    id: int
    title: str
    kind: str
    x: float
    y: float
    details: NodeDetails = field(default_factory=NodeDetails)
    status: str = "active"
    style: NodeStyle = field(init=False)

    def __post_init__(self) -> None:
        self.restyle()

    def restyle(self) -> None:
        self.style = style_for(self.kind, self.details.golden_path)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CanvasNode":
        """Map a ``node`` row. Missing fields are defaulted; a missing id raises KeyError."""
        return cls(
            id=int(row["id"]),
            title=row["title"] if row.get("title") is not None else DEFAULT_TITLE,
            kind=row.get("type") or row.get("kind") or DEFAULT_KIND,
            x=_coordinate(row.get("x")),
            y=_coordinate(row.get("y")),
            details=NodeDetails.from_raw(row.get("details")),
            status=row.get("status") or "active",
        )

    def to_patch(self) -> dict[str, Any]:
        """Columns written back to the store on save."""
        return {
            "x": self.x,
            "y": self.y,
            "title": self.title,
            "type": self.kind,
            "details": self.details.to_raw(),
        }


@dataclass
class CanvasEdge:
    id: str
    source: int
    target: int
    label: str | None = None
    animated: bool = False
    db_id: int | None = None
    style: EdgeStyle = field(default_factory=lambda: EdgeStyle(stroke=FALLBACK_ACCENT))

    @property
    def key(self) -> str:
        return edge_key(self.source, self.target)

    @property
    def remote_style(self) -> str:
        return "dashed" if self.animated else "solid"


@dataclass(frozen=True)
class GraphSnapshot:
    """Value copy of the canvas. Never aliases live model objects."""

    nodes: tuple[CanvasNode, ...] = ()
    edges: tuple[CanvasEdge, ...] = ()

    def rekeyed(self, old_id: int, new_id: int) -> "GraphSnapshot":
        """Copy with one node id replaced; edges follow the node."""

        def swap(node_id: int) -> int:
            return new_id if node_id == old_id else node_id

        return GraphSnapshot(
            nodes=tuple(replace(n, id=swap(n.id)) for n in self.nodes),
            edges=tuple(
                replace(e, source=swap(e.source), target=swap(e.target)) for e in self.edges
            ),
        )


class GraphModel:
    """Single-writer arena of canvas nodes and edges for one workflow."""

    def __init__(
        self,
        nodes: Iterable[CanvasNode] = (),
        edges: Iterable[CanvasEdge] = (),
    ):
        self._nodes: dict[int, CanvasNode] = {}
        self._edges: dict[str, CanvasEdge] = {}
        self._synthetic_floor = 0
        self._edge_seq = 0
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge)

    @classmethod
    def load_from(
        cls,
        node_rows: Iterable[dict[str, Any]],
        edge_rows: Iterable[dict[str, Any]],
    ) -> "GraphModel":
        """Build a model from store rows, pruning edges whose endpoints are missing."""
        model = cls()
        for row in node_rows:
            try:
                node = CanvasNode.from_row(row)
            except (KeyError, TypeError, ValueError):
                logger.warning("node_row_without_id_skipped", row_keys=sorted(row))
                continue
            model.add_node(node)

        for row in edge_rows:
            edge = model._edge_from_row(row)
            if edge is not None:
                model.add_edge(edge)

        logger.debug(
            "graph_loaded",
            node_count=len(model._nodes),
            edge_count=len(model._edges),
        )
        return model

    def _edge_from_row(self, row: dict[str, Any]) -> CanvasEdge | None:
        try:
            source = int(row["from_node_id"])
            target = int(row["to_node_id"])
        except (KeyError, TypeError, ValueError):
            logger.debug("edge_row_without_endpoints_dropped", edge_id=row.get("id"))
            return None

        if source not in self._nodes or target not in self._nodes:
            logger.debug(
                "orphan_edge_dropped",
                edge_id=row.get("id"),
                source=source,
                target=target,
            )
            return None

        db_id = row.get("id")
        return CanvasEdge(
            id=str(db_id) if db_id is not None else f"{source}-{target}",
            source=source,
            target=target,
            label=row.get("label") or None,
            animated=row.get("style") == "dashed",
            db_id=int(db_id) if db_id is not None else None,
            style=edge_style_for(self._nodes[source].kind),
        )

    # ── Accessors ─────────────────────────────────────────────────────────

    @property
    def nodes(self) -> list[CanvasNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[CanvasEdge]:
        return list(self._edges.values())

    def node(self, node_id: int) -> CanvasNode | None:
        return self._nodes.get(node_id)

    def edge(self, edge_id: str) -> CanvasEdge | None:
        return self._edges.get(edge_id)

    def has_node(self, node_id: int) -> bool:
        return node_id in self._nodes

    def last_node(self) -> CanvasNode | None:
        if not self._nodes:
            return None
        return next(reversed(self._nodes.values()))

    def find_edge(self, source: int, target: int) -> CanvasEdge | None:
        key = edge_key(source, target)
        for edge in self._edges.values():
            if edge.key == key:
                return edge
        return None

    def incident_edges(self, node_id: int) -> list[CanvasEdge]:
        return [
            e for e in self._edges.values() if e.source == node_id or e.target == node_id
        ]

    def outgoing(self, node_id: int) -> list[CanvasEdge]:
        return [e for e in self._edges.values() if e.source == node_id]

    def kind_of(self, node_id: int) -> str:
        node = self._nodes.get(node_id)
        return node.kind if node is not None else DEFAULT_KIND

    # ── Mutation (called by CanvasEditor and HistoryStack only) ──────────

    def add_node(self, node: CanvasNode) -> CanvasNode:
        self._nodes[node.id] = node
        return node

    def add_edge(self, edge: CanvasEdge) -> CanvasEdge:
        self._edges[edge.id] = edge
        return edge

    def remove_node(self, node_id: int) -> tuple[CanvasNode | None, list[CanvasEdge]]:
        """Remove a node and every edge touching it. Returns what was removed."""
        node = self._nodes.pop(node_id, None)
        removed = self.incident_edges(node_id)
        for edge in removed:
            del self._edges[edge.id]
        return node, removed

    def remove_edge(self, edge_id: str) -> CanvasEdge | None:
        return self._edges.pop(edge_id, None)

    def restyle_outgoing(self, node_id: int) -> None:
        style = edge_style_for(self.kind_of(node_id))
        for edge in self.outgoing(node_id):
            edge.style = style

    def rekey_node(self, old_id: int, new_id: int) -> None:
        """Replace a node id, keeping order and edges. Unknown ids are ignored."""
        if old_id not in self._nodes:
            return
        node = self._nodes[old_id]
        node.id = new_id
        self._nodes = {
            (new_id if nid == old_id else nid): n for nid, n in self._nodes.items()
        }
        for edge in self._edges.values():
            if edge.source == old_id:
                edge.source = new_id
            if edge.target == old_id:
                edge.target = new_id

    def next_synthetic_id(self) -> int:
        self._synthetic_floor = min(self._synthetic_floor, min(self._nodes, default=0)) - 1
        return self._synthetic_floor

    def next_edge_id(self) -> str:
        while True:
            self._edge_seq += 1
            candidate = f"edge-{self._edge_seq}"
            if candidate not in self._edges:
                return candidate

    # ── Snapshots ─────────────────────────────────────────────────────────

    def snapshot(self) -> GraphSnapshot:
        nodes, edges = copy.deepcopy((list(self._nodes.values()), list(self._edges.values())))
        return GraphSnapshot(nodes=tuple(nodes), edges=tuple(edges))

    def restore(self, snapshot: GraphSnapshot) -> None:
        nodes, edges = copy.deepcopy((list(snapshot.nodes), list(snapshot.edges)))
        self._nodes = {n.id: n for n in nodes}
        self._edges = {e.id: e for e in edges}

"""Pydantic schemas for the canvas endpoints.

Nodes and edges use the client spelling: ``kind`` for the node type and
``animated`` for the dashed edge style.
"""

from typing import Any

from pydantic import BaseModel, Field


class CanvasNodeIn(BaseModel):
    id: int
    title: str = "Node"
    kind: str = "action"
    x: float = 100.0
    y: float = 100.0
    details: dict[str, Any] = {}
    status: str = "active"


class CanvasNodeOut(CanvasNodeIn):
    style: dict[str, Any]


class CanvasEdgeIn(BaseModel):
    id: str
    source: int
    target: int
    label: str | None = None
    animated: bool = False
    db_id: int | None = None


class CanvasEdgeOut(CanvasEdgeIn):
    style: dict[str, Any]


class CanvasResponse(BaseModel):
    workflow_id: int
    nodes: list[CanvasNodeOut]
    edges: list[CanvasEdgeOut]


class NodeCreateRequest(BaseModel):
    kind: str = "action"


class NodeCreateResponse(BaseModel):
    node: CanvasNodeOut
    # local edge chaining the previous node; persisted by the next save
    edge: CanvasEdgeOut | None = None


class CanvasSaveRequest(BaseModel):
    nodes: list[CanvasNodeIn] = []
    edges: list[CanvasEdgeIn] = []
    deleted_node_ids: list[int] = Field(default_factory=list)
    deleted_edge_ids: list[int] = Field(default_factory=list)


class SaveResponse(BaseModel):
    nodes_updated: int
    nodes_deleted: list[int]
    edges_inserted: list[str]
    edges_updated: list[str]
    edges_deleted: list[int]
    edges_skipped: list[str]
    # ids of nodes re-created because their rows were gone, old -> new
    nodes_restored: dict[int, int] = {}

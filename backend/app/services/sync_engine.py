"""Synchronization engine: converges the store to the local canvas.

save() steps:
1. Update every persisted node (position, title, kind, details). A node
   whose row is gone (undo of a delete that was already saved) is inserted
   again and rekeyed everywhere to its new id
2. Flush buffered deletions in dependency order: edge ids, edges touching
   deleted nodes (as source, then as target), then the nodes themselves
3. Fetch the workflow's edges from the store
4. Key remote and local edges by "{from}_{to}"
5. Insert local-only keys
6. Update keys present on both sides whose label or style differ
7. Delete remote-only keys
8. Drop the flushed ids from the deletion buffers

Every update and delete is scoped to the engine's workflow.

The model and buffers are copied when save() starts, so edits made while a
save is in flight are left for the next one. Nothing is rolled back on
failure: the key diff is idempotent and the next successful save converges.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from app.core.metrics import sync_duration_seconds, sync_operations_total, sync_runs_total
from app.services.graph_model import (
    CanvasEdge,
    GraphModel,
    GraphSnapshot,
    edge_key,
    is_synthetic_id,
)
from app.services.table_store import RowNotFound, StoreError, TableStore

logger = structlog.stdlib.get_logger(__name__)


class SyncError(Exception):
    """A store call failed during save. Earlier calls of the same save stay applied."""

    def __init__(self, stage: str, cause: StoreError):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Save failed during {stage}: {cause}")


class SaveInProgressError(Exception):
    """Raised when save() is called while another save is still running."""

    def __init__(self, workflow_id: int):
        self.workflow_id = workflow_id
        super().__init__(f"A save is already in progress for workflow {workflow_id}")


@dataclass
class DeletionBuffers:
    """Persisted ids deleted locally but not yet deleted in the store."""

    node_ids: set[int] = field(default_factory=set)
    edge_ids: set[int] = field(default_factory=set)

    def snapshot(self) -> "DeletionBuffers":
        return DeletionBuffers(node_ids=set(self.node_ids), edge_ids=set(self.edge_ids))

    def discard(self, flushed: "DeletionBuffers") -> None:
        self.node_ids -= flushed.node_ids
        self.edge_ids -= flushed.edge_ids

    @property
    def is_empty(self) -> bool:
        return not (self.node_ids or self.edge_ids)


@dataclass
class SyncReport:
    nodes_updated: list[int] = field(default_factory=list)
    buffered_edges_deleted: list[int] = field(default_factory=list)
    nodes_deleted: list[int] = field(default_factory=list)
    edges_inserted: list[str] = field(default_factory=list)
    edges_updated: list[str] = field(default_factory=list)
    edges_deleted: list[int] = field(default_factory=list)
    edges_skipped: list[str] = field(default_factory=list)
    # old id -> id of the re-inserted row
    nodes_restored: dict[int, int] = field(default_factory=dict)

    @property
    def edge_operations(self) -> int:
        """Insert/update/delete count of the key-diff phase."""
        return len(self.edges_inserted) + len(self.edges_updated) + len(self.edges_deleted)


class SyncEngine:
    def __init__(
        self,
        workflow_id: int,
        model: GraphModel,
        node_store: TableStore,
        edge_store: TableStore,
        deletions: DeletionBuffers | None = None,
        on_node_rekeyed: Callable[[int, int], None] | None = None,
    ):
        self.workflow_id = workflow_id
        self._model = model
        self._node_store = node_store
        self._edge_store = edge_store
        self._scope = {"workflow_id": workflow_id}
        self.deletions = deletions if deletions is not None else DeletionBuffers()
        self._on_node_rekeyed = on_node_rekeyed
        self._saving = False

    @property
    def is_saving(self) -> bool:
        return self._saving

    async def _insert_node(self, row: dict[str, Any]) -> int:
        created = await self._node_store.insert({"workflow_id": self.workflow_id, **row})
        sync_operations_total.labels(operation="node_insert").inc()
        return int(created["id"])

    async def create_node(self, kind: str, title: str, x: float, y: float) -> int:
        """Insert a node row right away and return its persisted id."""
        try:
            return await self._insert_node(
                {
                    "title": title,
                    "type": kind,
                    "x": x,
                    "y": y,
                    "details": {"goldenPath": False},
                    "status": "active",
                }
            )
        except StoreError as exc:
            raise SyncError("create_node", exc) from exc

    async def save(self) -> SyncReport:
        if self._saving:
            raise SaveInProgressError(self.workflow_id)
        self._saving = True
        start = time.perf_counter()

        snapshot = self._model.snapshot()
        pending = self.deletions.snapshot()
        report = SyncReport()
        stage = "nodes"
        try:
            snapshot = await self._update_nodes(snapshot, pending, report)
            stage = "deletions"
            await self._flush_deletions(snapshot, pending, report)
            stage = "edges"
            await self._reconcile_edges(snapshot, report)
        except StoreError as exc:
            sync_runs_total.labels(status="failed").inc()
            logger.error(
                "sync_failed",
                workflow_id=self.workflow_id,
                stage=stage,
                table=exc.table,
                operation=exc.operation,
            )
            raise SyncError(stage, exc) from exc
        finally:
            self._saving = False

        self.deletions.discard(pending)

        duration = time.perf_counter() - start
        sync_runs_total.labels(status="ok").inc()
        sync_duration_seconds.observe(duration)
        logger.info(
            "sync_completed",
            workflow_id=self.workflow_id,
            nodes_updated=len(report.nodes_updated),
            nodes_restored=len(report.nodes_restored),
            nodes_deleted=len(report.nodes_deleted),
            edges_inserted=len(report.edges_inserted),
            edges_updated=len(report.edges_updated),
            edges_deleted=len(report.edges_deleted) + len(report.buffered_edges_deleted),
            duration_ms=round(duration * 1000, 2),
        )
        return report

    async def _update_nodes(
        self,
        snapshot: GraphSnapshot,
        pending: DeletionBuffers,
        report: SyncReport,
    ) -> GraphSnapshot:
        """Write node rows; returns the snapshot with re-inserted nodes rekeyed."""
        for node in snapshot.nodes:
            if is_synthetic_id(node.id):
                logger.warning("unpersisted_node_skipped", node_id=node.id)
                continue
            try:
                await self._node_store.update(node.id, node.to_patch(), scope=self._scope)
            except RowNotFound:
                new_id = await self._insert_node({**node.to_patch(), "status": node.status})
                self._rekey(node.id, new_id, pending)
                report.nodes_restored[node.id] = new_id
                continue
            sync_operations_total.labels(operation="node_update").inc()
            report.nodes_updated.append(node.id)

        for old_id, new_id in report.nodes_restored.items():
            snapshot = snapshot.rekeyed(old_id, new_id)
        return snapshot

    def _rekey(self, old_id: int, new_id: int, pending: DeletionBuffers) -> None:
        logger.warning(
            "missing_node_reinserted",
            workflow_id=self.workflow_id,
            old_id=old_id,
            new_id=new_id,
        )
        self._model.rekey_node(old_id, new_id)
        # deleted locally while this save was running
        if old_id in self.deletions.node_ids and old_id not in pending.node_ids:
            self.deletions.node_ids.discard(old_id)
            self.deletions.node_ids.add(new_id)
        if self._on_node_rekeyed is not None:
            self._on_node_rekeyed(old_id, new_id)

    async def _flush_deletions(
        self,
        snapshot: GraphSnapshot,
        pending: DeletionBuffers,
        report: SyncReport,
    ) -> None:
        if pending.is_empty:
            return
        # ids brought back by undo are live again and must not be deleted
        live_node_ids = {n.id for n in snapshot.nodes} | set(report.nodes_restored)
        live_edge_ids = {e.db_id for e in snapshot.edges if e.db_id is not None}
        edge_ids = sorted(pending.edge_ids - live_edge_ids)
        node_ids = sorted(pending.node_ids - live_node_ids)

        if edge_ids:
            await self._edge_store.remove_in("id", edge_ids, scope=self._scope)
            sync_operations_total.labels(operation="edge_delete").inc(len(edge_ids))
            report.buffered_edges_deleted.extend(edge_ids)

        if node_ids:
            await self._edge_store.remove_in("from_node_id", node_ids, scope=self._scope)
            await self._edge_store.remove_in("to_node_id", node_ids, scope=self._scope)
            await self._node_store.remove_in("id", node_ids, scope=self._scope)
            sync_operations_total.labels(operation="node_delete").inc(len(node_ids))
            report.nodes_deleted.extend(node_ids)

    async def _reconcile_edges(self, snapshot: GraphSnapshot, report: SyncReport) -> None:
        remote_rows = await self._edge_store.list(self._scope)

        remote: dict[str, dict[str, Any]] = {}
        duplicates: list[dict[str, Any]] = []
        for row in remote_rows:
            key = edge_key(int(row["from_node_id"]), int(row["to_node_id"]))
            if key in remote:
                duplicates.append(row)
            else:
                remote[key] = row

        local = self._local_edges_by_key(snapshot, report)

        for key, edge in local.items():
            row = remote.pop(key, None)
            if row is None:
                await self._edge_store.insert(
                    {
                        "from_node_id": edge.source,
                        "to_node_id": edge.target,
                        "workflow_id": self.workflow_id,
                        "label": edge.label,
                        "style": edge.remote_style,
                    }
                )
                sync_operations_total.labels(operation="edge_insert").inc()
                report.edges_inserted.append(key)
            elif (row.get("label") or None) != edge.label or row.get("style") != edge.remote_style:
                await self._edge_store.update(
                    row["id"],
                    {"label": edge.label, "style": edge.remote_style},
                    scope=self._scope,
                )
                sync_operations_total.labels(operation="edge_update").inc()
                report.edges_updated.append(key)

        # remote-only keys, plus parallel rows collapsed onto an existing key
        for row in [*remote.values(), *duplicates]:
            await self._edge_store.remove(row["id"])
            sync_operations_total.labels(operation="edge_delete").inc()
            report.edges_deleted.append(row["id"])

    def _local_edges_by_key(
        self, snapshot: GraphSnapshot, report: SyncReport
    ) -> dict[str, CanvasEdge]:
        node_ids = {n.id for n in snapshot.nodes}
        local: dict[str, CanvasEdge] = {}
        for edge in snapshot.edges:
            endpoints = (edge.source, edge.target)
            if any(is_synthetic_id(n) or n not in node_ids for n in endpoints):
                logger.warning(
                    "edge_with_unresolved_endpoint_skipped",
                    edge_id=edge.id,
                    source=edge.source,
                    target=edge.target,
                )
                report.edges_skipped.append(edge.id)
                continue
            local[edge.key] = edge
        return local

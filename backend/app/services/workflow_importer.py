"""Persist an LLM-generated workflow.

Provider node ids ("node-1", ...) are never written to the store. Nodes are
inserted one at a time so each returned row pairs with its provider id,
then edges are inserted with both endpoints translated to real ids. Edges
naming an unknown provider id are skipped.
"""

from dataclasses import dataclass, field

import structlog

from app.schemas.generation import GeneratedWorkflow
from app.services.table_store import TableStore

logger = structlog.stdlib.get_logger(__name__)


@dataclass
class ImportResult:
    workflow_id: int
    node_id_map: dict[str, int] = field(default_factory=dict)
    edges_inserted: int = 0
    skipped_edges: list[str] = field(default_factory=list)


class WorkflowImporter:
    def __init__(
        self,
        workflow_store: TableStore,
        node_store: TableStore,
        edge_store: TableStore,
    ):
        self._workflows = workflow_store
        self._nodes = node_store
        self._edges = edge_store

    async def import_generated(self, generated: GeneratedWorkflow) -> ImportResult:
        """Insert workflow, nodes, then edges. StoreError propagates; no rollback."""
        workflow_row = await self._workflows.insert(
            {
                "title": generated.title,
                "description": generated.description,
                "domain": generated.domain or "General",
                "version": "1.0",
                "status": "draft",
            }
        )
        result = ImportResult(workflow_id=int(workflow_row["id"]))

        for node in generated.nodes:
            if node.id in result.node_id_map:
                logger.warning("duplicate_generated_node_id", provider_id=node.id)
                continue
            row = await self._nodes.insert(
                {
                    "workflow_id": result.workflow_id,
                    "type": node.type,
                    "title": node.title,
                    "x": node.x,
                    "y": node.y,
                    "details": node.details,
                    "status": "active",
                }
            )
            result.node_id_map[node.id] = int(row["id"])

        for index, edge in enumerate(generated.edges):
            source = result.node_id_map.get(edge.from_node_id)
            target = result.node_id_map.get(edge.to_node_id)
            if source is None or target is None:
                edge_ref = edge.id or f"#{index}"
                logger.warning(
                    "generated_edge_unmapped",
                    edge=edge_ref,
                    from_node_id=edge.from_node_id,
                    to_node_id=edge.to_node_id,
                )
                result.skipped_edges.append(edge_ref)
                continue
            await self._edges.insert(
                {
                    "workflow_id": result.workflow_id,
                    "from_node_id": source,
                    "to_node_id": target,
                    "label": edge.label or None,
                    "style": edge.style,
                }
            )
            result.edges_inserted += 1

        logger.info(
            "generated_workflow_imported",
            workflow_id=result.workflow_id,
            node_count=len(result.node_id_map),
            edges_inserted=result.edges_inserted,
            edges_skipped=len(result.skipped_edges),
        )
        return result

#!/usr/bin/env python
"""Seed development database with a sample workflow.

Run this after migrations to set up a working dev environment:
    python scripts/seed_dev.py

Creates:
- "Sample onboarding" workflow (5 nodes, golden path through the happy branch)
- One open problem on that workflow
"""

import asyncio
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from app.core.database import async_session
from app.models import Edge, Node, NodeError, Problem, Workflow
from app.schemas.generation import GeneratedWorkflow
from app.services.table_store import SqlTableStore
from app.services.workflow_importer import WorkflowImporter

SAMPLE_TITLE = "Sample onboarding"

SAMPLE = {
    "title": SAMPLE_TITLE,
    "description": "New-hire onboarding with a manual approval step.",
    "domain": "HR",
    "nodes": [
        {"id": "start", "type": "action", "title": "Receive signed offer", "x": 250, "y": 100,
         "details": {"goldenPath": True, "owner": "HR"}},
        {"id": "check", "type": "decision", "title": "Background check passed?", "x": 250, "y": 250,
         "details": {"goldenPath": True}},
        {"id": "approve", "type": "human", "title": "Manager approval", "x": 250, "y": 400,
         "details": {"goldenPath": True, "runbook": "Approve in the HR portal"}},
        {"id": "reject", "type": "exception", "title": "Withdraw offer", "x": 550, "y": 250,
         "details": {}},
        {"id": "done", "type": "terminal", "title": "Accounts provisioned", "x": 250, "y": 550,
         "details": {"goldenPath": True}},
    ],
    "edges": [
        {"from_node_id": "start", "to_node_id": "check"},
        {"from_node_id": "check", "to_node_id": "approve", "label": "yes"},
        {"from_node_id": "check", "to_node_id": "reject", "label": "no", "style": "dashed"},
        {"from_node_id": "approve", "to_node_id": "done"},
    ],
}


async def seed_sample_workflow() -> int | None:
    """Create the sample workflow unless one with the same title exists."""
    async with async_session() as db:
        result = await db.execute(select(Workflow.id).where(Workflow.title == SAMPLE_TITLE))
        existing = result.scalar_one_or_none()
        if existing is not None:
            print(f"Sample workflow already exists: {existing}")
            return None

    importer = WorkflowImporter(
        SqlTableStore(async_session, Workflow),
        SqlTableStore(async_session, Node),
        SqlTableStore(async_session, Edge),
    )
    imported = await importer.import_generated(GeneratedWorkflow.model_validate(SAMPLE))
    print(f"Created workflow {imported.workflow_id} with {len(imported.node_id_map)} nodes")

    await SqlTableStore(async_session, Problem).insert(
        {
            "workflow_id": imported.workflow_id,
            "description": "Approval step regularly waits more than 3 days",
            "owner_names": "HR Ops",
        }
    )
    await SqlTableStore(async_session, NodeError).insert(
        {
            "workflow_id": imported.workflow_id,
            "node_id": imported.node_id_map["check"],
            "description": "Vendor API timed out",
        }
    )
    return imported.workflow_id


async def main():
    print("Seeding development database...")
    workflow_id = await seed_sample_workflow()

    if workflow_id is not None:
        print("\nSample workflow seed complete!")
    else:
        print("\nSample workflow seed skipped.")


if __name__ == "__main__":
    asyncio.run(main())

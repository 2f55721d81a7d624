"""SQLAlchemy ORM models: workflow graphs and their issue records.

Import all models here so Alembic autogenerate can discover them.
"""

from app.models.issue import NodeError, Problem
from app.models.workflow import Edge, Node, Workflow, WorkflowStatus

__all__ = [
    "Workflow",
    "WorkflowStatus",
    "Node",
    "Edge",
    "NodeError",
    "Problem",
]

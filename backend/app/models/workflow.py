"""Workflow graph models.

A workflow owns its nodes and edges. Edges reference nodes by integer id;
the foreign keys cascade so a deleted node never leaves dangling edges in
the store. Node ``details`` and edge ``metadata`` are free-form JSON bags.
"""

import enum

from sqlalchemy import Enum, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, IntegerPrimaryKeyMixin, JSONBag, TimestampMixin


class WorkflowStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class Workflow(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "workflow"

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    domain: Mapped[str | None] = mapped_column(String(120))
    version: Mapped[str] = mapped_column(String(32), default="1")
    status: Mapped[WorkflowStatus] = mapped_column(
        Enum(
            WorkflowStatus,
            name="workflow_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=WorkflowStatus.DRAFT,
    )

    # Relationships
    nodes: Mapped[list["Node"]] = relationship(
        back_populates="workflow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    edges: Mapped[list["Edge"]] = relationship(
        back_populates="workflow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Node(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "node"
    __table_args__ = (Index("ix_node_workflow_id", "workflow_id"),)

    workflow_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("workflow.id", ondelete="CASCADE")
    )
    title: Mapped[str] = mapped_column(String(255), default="Node")
    type: Mapped[str] = mapped_column(String(32), default="action")
    x: Mapped[float] = mapped_column(Float, default=100.0)
    y: Mapped[float] = mapped_column(Float, default=100.0)
    details: Mapped[dict] = mapped_column(JSONBag, default=dict)
    status: Mapped[str] = mapped_column(String(32), default="active")

    # Relationships
    workflow: Mapped["Workflow"] = relationship(back_populates="nodes")


class Edge(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "edge"
    __table_args__ = (Index("ix_edge_workflow_id", "workflow_id"),)

    workflow_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("workflow.id", ondelete="CASCADE")
    )
    from_node_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("node.id", ondelete="CASCADE")
    )
    to_node_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("node.id", ondelete="CASCADE")
    )
    label: Mapped[str | None] = mapped_column(String(255))
    style: Mapped[str] = mapped_column(String(16), default="solid")
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONBag, default=None, nullable=True
    )

    # Relationships
    workflow: Mapped["Workflow"] = relationship(back_populates="edges")

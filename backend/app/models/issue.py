"""Issue records attached to a workflow graph.

``error`` rows belong to one node, ``problem`` rows to the whole workflow.
Both are edited through the scoped store (see app.services.table_store).
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, IntegerPrimaryKeyMixin, TimestampMixin


class NodeError(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "error"

    workflow_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("workflow.id", ondelete="CASCADE"), index=True
    )
    node_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("node.id", ondelete="CASCADE"), index=True
    )
    description: Mapped[str] = mapped_column(Text, default="")
    is_fixed: Mapped[bool] = mapped_column(Boolean, default=False)
    solution: Mapped[str | None] = mapped_column(Text)
    solver_contact_id: Mapped[int | None] = mapped_column(Integer)
    reported_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    fixed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Problem(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "problem"

    workflow_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("workflow.id", ondelete="CASCADE"), index=True
    )
    description: Mapped[str] = mapped_column(Text, default="")
    is_solved: Mapped[bool] = mapped_column(Boolean, default=False)
    solution: Mapped[str | None] = mapped_column(Text)
    owner_names: Mapped[str | None] = mapped_column(String(255))
    reported_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    solved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

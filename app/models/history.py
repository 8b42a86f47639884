"""Append-only audit trail of stage transitions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, utcnow


class HistoryEntry(Base):
    __tablename__ = "order_workflow_history"
    __table_args__ = (
        Index("idx_order_workflow_history_order", "order_id"),
        Index("idx_order_workflow_history_changed_at", "changed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # Stage ids are not foreign keys so rows outlive deleted stages unchanged.
    from_stage_id: Mapped[int | None] = mapped_column(Integer)
    from_stage_name: Mapped[str | None] = mapped_column(String(120))
    to_stage_id: Mapped[int] = mapped_column(Integer, nullable=False)
    to_stage_name: Mapped[str] = mapped_column(String(120), nullable=False)
    changed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    notes: Mapped[str | None] = mapped_column(Text)
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    actor = relationship("User", lazy="joined")


class ImmutableHistoryError(RuntimeError):
    """Raised when code tries to rewrite or remove an audit row."""


@event.listens_for(HistoryEntry, "before_update")
def _reject_history_update(mapper, connection, target) -> None:
    raise ImmutableHistoryError(f"History entry {target.id} is append-only.")


@event.listens_for(HistoryEntry, "before_delete")
def _reject_history_delete(mapper, connection, target) -> None:
    raise ImmutableHistoryError(f"History entry {target.id} is append-only.")

"""Current workflow state of one tracked order."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.enums import Priority
from app.models.base import AuditMixin, Base, utcnow


class Assignment(Base, AuditMixin):
    __tablename__ = "order_workflow"
    __table_args__ = (
        Index("idx_order_workflow_stage", "stage_id"),
        Index("idx_order_workflow_assigned_to", "assigned_to"),
        Index("idx_order_workflow_priority", "priority"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("source_orders.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    stage_id: Mapped[int] = mapped_column(ForeignKey("order_workflow_stages.id", ondelete="RESTRICT"), nullable=False)
    assigned_to: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    priority: Mapped[int] = mapped_column(Integer, default=int(Priority.NORMAL), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    order = relationship("SourceOrder", lazy="joined")
    stage = relationship("Stage", lazy="joined")
    assignee = relationship("User", lazy="joined")

"""Workflow stage model module."""

from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.enums import DEFAULT_STAGE_COLOR
from app.models.base import AuditMixin, Base, FamilyScopedMixin


class Stage(Base, AuditMixin, FamilyScopedMixin):
    __tablename__ = "order_workflow_stages"
    __table_args__ = (
        UniqueConstraint("family_id", "position", name="uq_stages_family_position"),
        Index("idx_stages_family_position", "family_id", "position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    color: Mapped[str] = mapped_column(String(16), default=DEFAULT_STAGE_COLOR, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    external_status: Mapped[str | None] = mapped_column(String(40))
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

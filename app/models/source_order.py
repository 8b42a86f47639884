"""Read-only mirror of orders pulled from the external order source."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, FamilyScopedMixin, utcnow


class SourceOrder(Base, FamilyScopedMixin):
    __tablename__ = "source_orders"
    __table_args__ = (Index("idx_source_orders_family_created", "family_id", "created_at"),)

    # Same id as in the order source.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    order_number: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(40), default="processing", nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(255))
    customer_email: Mapped[str | None] = mapped_column(String(320))
    total: Mapped[str | None] = mapped_column(String(32))
    currency: Mapped[str | None] = mapped_column(String(8))
    line_items: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    customization: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def snapshot(self) -> dict[str, Any]:
        """Display-only view of the order embedded in board payloads."""
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "total": self.total,
            "currency": self.currency,
            "line_items": list(self.line_items or []),
            "customization": dict(self.customization or {}),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

"""Read-only assembly of stages and assignments into a renderable board.

Everything here works on frozen records rather than ORM rows so the same code
serves the API (from the database) and the sync controller (from JSON
payloads and optimistic edits). Nothing in this module mutates state.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from app.core.enums import Priority
from app.models.base import utcnow


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


@dataclass(frozen=True)
class StageRecord:
    id: int
    name: str
    color: str
    position: int
    external_status: str | None = None
    is_hidden: bool = False

    @classmethod
    def from_model(cls, stage) -> "StageRecord":
        return cls(
            id=stage.id,
            name=stage.name,
            color=stage.color,
            position=stage.position,
            external_status=stage.external_status,
            is_hidden=bool(stage.is_hidden),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StageRecord":
        return cls(
            id=int(payload["id"]),
            name=str(payload["name"]),
            color=str(payload.get("color") or ""),
            position=int(payload["position"]),
            external_status=payload.get("external_status"),
            is_hidden=bool(payload.get("is_hidden", False)),
        )

    def to_payload(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class AssignmentRecord:
    order_id: int
    stage_id: int
    priority: int
    last_updated: datetime
    assigned_to: int | None = None
    assignee_name: str | None = None
    notes: str | None = None
    order: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, assignment) -> "AssignmentRecord":
        return cls(
            order_id=assignment.order_id,
            stage_id=assignment.stage_id,
            priority=int(assignment.priority),
            last_updated=assignment.last_updated,
            assigned_to=assignment.assigned_to,
            assignee_name=assignment.assignee.display_name if assignment.assignee is not None else None,
            notes=assignment.notes,
            order=assignment.order.snapshot() if assignment.order is not None else {},
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AssignmentRecord":
        return cls(
            order_id=int(payload["order_id"]),
            stage_id=int(payload["stage_id"]),
            priority=int(payload.get("priority", 0)),
            last_updated=_parse_timestamp(payload["last_updated"]),
            assigned_to=payload.get("assigned_to"),
            assignee_name=payload.get("assignee_name"),
            notes=payload.get("notes"),
            order=dict(payload.get("order") or {}),
        )

    def with_changes(self, **changes: Any) -> "AssignmentRecord":
        return dataclasses.replace(self, **changes)

    def time_in_stage(self, now: datetime) -> timedelta:
        return max(now - self.last_updated, timedelta(0))

    def to_payload(self, now: datetime | None = None) -> dict[str, Any]:
        current = now or utcnow()
        return {
            "order_id": self.order_id,
            "stage_id": self.stage_id,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "assignee_name": self.assignee_name,
            "notes": self.notes,
            "last_updated": self.last_updated.isoformat(),
            "time_in_stage_minutes": int(self.time_in_stage(current).total_seconds() // 60),
            "order": dict(self.order),
        }


def card_sort_key(record: AssignmentRecord) -> tuple[int, datetime, int]:
    """Priority descending, then longest time in stage (oldest ``last_updated``) first."""
    return (-record.priority, record.last_updated, record.order_id)


@dataclass(frozen=True)
class ColumnView:
    stage: StageRecord
    cards: tuple[AssignmentRecord, ...]

    @property
    def total(self) -> int:
        return len(self.cards)

    @property
    def rush_count(self) -> int:
        return sum(1 for card in self.cards if card.priority == Priority.RUSH)


@dataclass(frozen=True)
class BoardView:
    columns: tuple[ColumnView, ...]
    generated_at: datetime

    @property
    def visible_columns(self) -> tuple[ColumnView, ...]:
        return tuple(column for column in self.columns if not column.stage.is_hidden)

    @property
    def total_orders(self) -> int:
        return sum(column.total for column in self.columns)

    @property
    def rush_count(self) -> int:
        return sum(column.rush_count for column in self.columns)

    @property
    def unassigned_count(self) -> int:
        return sum(1 for column in self.columns for card in column.cards if card.assigned_to is None)

    def column(self, stage_id: int) -> ColumnView | None:
        for column in self.columns:
            if column.stage.id == stage_id:
                return column
        return None


def compose_board(
    stages: Iterable[StageRecord],
    assignments: Iterable[AssignmentRecord],
    now: datetime | None = None,
) -> BoardView:
    """Group cards under their stage, every stage included, hidden or not."""
    ordered_stages = sorted(stages, key=lambda stage: stage.position)
    by_stage: dict[int, list[AssignmentRecord]] = {stage.id: [] for stage in ordered_stages}
    for record in assignments:
        if record.stage_id in by_stage:
            by_stage[record.stage_id].append(record)

    columns = tuple(
        ColumnView(stage=stage, cards=tuple(sorted(by_stage[stage.id], key=card_sort_key)))
        for stage in ordered_stages
    )
    return BoardView(columns=columns, generated_at=now or utcnow())


def board_stats(view: BoardView) -> dict[str, Any]:
    return {
        "per_stage": [
            {
                "stage_id": column.stage.id,
                "stage_name": column.stage.name,
                "total_orders": column.total,
                "rush_orders": column.rush_count,
            }
            for column in view.columns
        ],
        "total_orders": view.total_orders,
        "unassigned_orders": view.unassigned_count,
    }

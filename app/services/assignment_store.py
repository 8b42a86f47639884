"""Current stage/owner/priority state of every tracked order."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.core.enums import CLASSIFICATION_KEYS, TERMINAL_SOURCE_STATUSES, Priority
from app.core.exceptions import InvalidPatch, InvalidStage, ValidationError
from app.models import Assignment, SourceOrder, Stage, User
from app.models.base import utcnow
from app.services.base_service import BaseService
from app.services.order_source import OrderSourceClient
from app.services.stage_registry import StageRegistry
from app.services.transition_engine import (
    TransitionEngine,
    load_assignment,
    record_initial_placement,
    record_transition,
    resolve_stage,
)

logger = logging.getLogger(__name__)

PATCH_FIELDS = frozenset({"stage_id", "assigned_to", "priority", "notes"})
SNAPSHOT_FIELDS = frozenset(
    {
        "order_number",
        "status",
        "customer_name",
        "customer_email",
        "total",
        "currency",
        "line_items",
        "customization",
        "created_at",
    }
)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date_bound(value: str | date | None, *, end_of_day: bool = False) -> datetime | None:
    """Turn a ``date_from``/``date_to`` query value into a naive-UTC bound.

    A bare ``YYYY-MM-DD`` covers the whole day, so with ``end_of_day`` it
    resolves to the last instant of that day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        day = value
    else:
        text = str(value).strip()
        try:
            if "T" not in text and " " not in text:
                day = date.fromisoformat(text)
            else:
                return to_naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError as exc:
            raise ValidationError(f"Invalid date filter: {value!r}") from exc
    return datetime.combine(day, time.max if end_of_day else time.min)


@dataclass(frozen=True)
class BoardFilters:
    """View-only narrowing of the board; never affects stored state."""

    date_from: datetime | None = None
    date_to: datetime | None = None
    classifications: Mapping[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return self.date_from is None and self.date_to is None and not any(self.classifications.values())

    def matches(self, order: SourceOrder | None) -> bool:
        if order is None:
            return self.is_empty()
        if self.date_from is not None and order.created_at < to_naive_utc(self.date_from):
            return False
        if self.date_to is not None and order.created_at > to_naive_utc(self.date_to):
            return False
        customization = order.customization or {}
        for key, wanted in self.classifications.items():
            if not wanted:
                continue
            value = customization.get(key)
            if value is None or wanted.strip().lower() not in str(value).lower():
                return False
        return True


@dataclass
class Board:
    stages: list[Stage]
    assignments: list[Assignment]


def validate_priority(value: Any) -> int:
    try:
        return int(Priority(int(value)))
    except (TypeError, ValueError) as exc:
        raise InvalidPatch(f"priority must be one of {[int(p) for p in Priority]}.") from exc


class AssignmentStore(BaseService):
    """Board reads and single-order edits."""

    def __init__(self, db: Session | None = None, order_source: OrderSourceClient | None = None) -> None:
        super().__init__(db=db)
        self.order_source = order_source

    def _family_assignments(self, family_id: int):
        return (
            self.db.query(Assignment)
            .join(SourceOrder, Assignment.order_id == SourceOrder.id)
            .join(Stage, Assignment.stage_id == Stage.id)
            .filter(SourceOrder.family_id == family_id, Stage.family_id == family_id)
        )

    def active_assignments(self, family_id: int) -> list[Assignment]:
        """Assignments whose source order has not reached a terminal status."""
        return (
            self._family_assignments(family_id)
            .filter(SourceOrder.status.notin_(sorted(TERMINAL_SOURCE_STATUSES)))
            .order_by(Assignment.order_id.asc())
            .all()
        )

    def get_board(self, family_id: int, filters: BoardFilters | None = None) -> Board:
        """All stages (hidden included) plus the active assignments matching ``filters``."""
        stages = StageRegistry(db=self.db).list_stages(family_id)
        assignments = self.active_assignments(family_id)
        if filters is not None and not filters.is_empty():
            assignments = [item for item in assignments if filters.matches(item.order)]
        return Board(stages=stages, assignments=assignments)

    def get_assignment(self, family_id: int, order_id: int) -> Assignment:
        return load_assignment(self.db, family_id, order_id)

    def validate_assignee(self, family_id: int, user_id: int | None) -> int | None:
        if user_id is None:
            return None
        user = self.db.query(User).filter(User.id == user_id, User.family_id == family_id).first()
        if user is None:
            raise InvalidPatch(f"User {user_id} is not a member of this family.")
        return user.id

    def update_assignment(
        self,
        family_id: int,
        order_id: int,
        changes: Mapping[str, Any],
        changed_by: int | None,
        history_note: str | None = None,
    ) -> Assignment:
        """Apply a partial edit.

        Only keys present in ``changes`` are touched; ``assigned_to=None``
        unassigns. A stage change is routed through the transition engine so
        it gets its history row. A patch that changes nothing (same stage, no
        other field) leaves ``last_updated`` alone.
        """
        unknown = sorted(set(changes) - PATCH_FIELDS)
        if unknown:
            raise InvalidPatch(f"Unsupported fields: {unknown}")

        assignment = load_assignment(self.db, family_id, order_id)
        target_stage = None
        if "stage_id" in changes:
            target_stage = resolve_stage(self.db, family_id, changes["stage_id"])
        if "priority" in changes:
            priority = validate_priority(changes["priority"])
        if "assigned_to" in changes:
            assignee = self.validate_assignee(family_id, changes["assigned_to"])

        now = utcnow()
        moved = False
        if target_stage is not None:
            moved = (
                record_transition(
                    self.db,
                    assignment,
                    target_stage,
                    changed_by=changed_by,
                    notes=history_note or changes.get("notes"),
                    now=now,
                )
                is not None
            )

        edited = bool(set(changes) - {"stage_id"})
        if "priority" in changes:
            assignment.priority = priority
        if "assigned_to" in changes:
            assignment.assigned_to = assignee
        if "notes" in changes:
            assignment.notes = changes["notes"]
        if not moved and not edited:
            return assignment

        assignment.last_updated = now
        self.commit()
        self.db.refresh(assignment)
        logger.info(
            "workflow.assignment.updated",
            extra={
                "event": "workflow.assignment.updated",
                "family_id": family_id,
                "order_id": order_id,
                "user_id": changed_by,
            },
        )
        if moved and target_stage is not None:
            TransitionEngine(db=self.db, order_source=self.order_source).push_external_status(
                assignment, target_stage
            )
        return assignment

    def upsert_source_order(self, family_id: int, order_id: int, **fields: Any) -> SourceOrder:
        """Mirror the order source's snapshot of an order."""
        unknown = sorted(set(fields) - SNAPSHOT_FIELDS)
        if unknown:
            raise InvalidPatch(f"Unknown order fields: {unknown}")
        order = self.db.query(SourceOrder).filter(SourceOrder.id == order_id).first()
        if order is None:
            order = SourceOrder(id=order_id, family_id=family_id)
            self.db.add(order)
        elif order.family_id != family_id:
            raise InvalidPatch(f"Order {order_id} belongs to another family.")
        for key, value in fields.items():
            setattr(order, key, value)
        self.commit()
        self.db.refresh(order)
        return order

    def register_order(self, family_id: int, order_id: int, changed_by: int | None = None) -> Assignment:
        """Put a newly observed order into the family's first stage.

        Idempotent: an order that already has an assignment is returned as is.
        """
        existing = self.db.query(Assignment).filter(Assignment.order_id == order_id).first()
        if existing is not None:
            return existing

        order = self.db.query(SourceOrder).filter(SourceOrder.id == order_id, SourceOrder.family_id == family_id).first()
        if order is None:
            raise InvalidPatch(f"Order {order_id} has not been mirrored for this family.")
        stage = StageRegistry(db=self.db).first_stage(family_id)
        if stage is None:
            raise InvalidStage("No workflow stages configured for family.")

        assignment = Assignment(
            order_id=order_id,
            stage_id=stage.id,
            priority=int(Priority.NORMAL),
            last_updated=utcnow(),
        )
        self.db.add(assignment)
        self.db.flush()
        record_initial_placement(self.db, assignment, stage, changed_by=changed_by)
        self.commit()
        self.db.refresh(assignment)
        logger.info(
            "workflow.order.registered",
            extra={"event": "workflow.order.registered", "family_id": family_id, "order_id": order_id},
        )
        return assignment

    def overdue(self, family_id: int, hours: int, now: datetime | None = None) -> list[Assignment]:
        """Active assignments untouched for longer than ``hours``."""
        cutoff = (now or utcnow()) - timedelta(hours=hours)
        return [item for item in self.active_assignments(family_id) if item.last_updated < cutoff]

    def filter_options(self, family_id: int) -> dict[str, list[str]]:
        """Distinct classification values present on active orders."""
        options: dict[str, set[str]] = {key: set() for key in CLASSIFICATION_KEYS}
        for assignment in self.active_assignments(family_id):
            customization = (assignment.order.customization if assignment.order else None) or {}
            for key in CLASSIFICATION_KEYS:
                value = customization.get(key)
                if value:
                    options[key].add(str(value))
        return {key: sorted(values) for key, values in options.items()}

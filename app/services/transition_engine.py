"""Stage transitions and their append-only history.

Any stage may move to any other stage of the same family. An accepted move
writes exactly one history row and refreshes ``last_updated``; moving an
order onto the stage it is already in writes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStage, OrderNotFound
from app.models import Assignment, HistoryEntry, SourceOrder, Stage
from app.models.base import utcnow
from app.services.base_service import BaseService
from app.services.order_source import OrderSourceClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    order_id: int
    from_stage_id: int | None
    to_stage_id: int
    changed: bool
    history_id: int | None = None


def resolve_stage(db: Session, family_id: int, stage_id: int | None) -> Stage:
    """Return the family's stage or raise ``InvalidStage``."""
    if stage_id is None:
        raise InvalidStage("stage_id is required.")
    stage = db.query(Stage).filter(Stage.id == stage_id, Stage.family_id == family_id).first()
    if stage is None:
        raise InvalidStage(f"Stage {stage_id} does not exist in this family.")
    return stage


def load_assignment(db: Session, family_id: int, order_id: int) -> Assignment:
    """Return the order's assignment within the family or raise ``OrderNotFound``."""
    assignment = (
        db.query(Assignment)
        .join(SourceOrder, Assignment.order_id == SourceOrder.id)
        .filter(Assignment.order_id == order_id, SourceOrder.family_id == family_id)
        .first()
    )
    if assignment is None:
        raise OrderNotFound(f"Order {order_id} is not on this family's board.")
    return assignment


def record_transition(
    db: Session,
    assignment: Assignment,
    to_stage: Stage,
    changed_by: int | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> HistoryEntry | None:
    """Move ``assignment`` to ``to_stage`` inside the current transaction.

    Returns the new history row, or None when the order is already there.
    """
    if assignment.stage_id == to_stage.id:
        return None

    from_stage = assignment.stage
    stamp = now or utcnow()
    entry = HistoryEntry(
        order_id=assignment.order_id,
        from_stage_id=assignment.stage_id,
        from_stage_name=from_stage.name if from_stage is not None else None,
        to_stage_id=to_stage.id,
        to_stage_name=to_stage.name,
        changed_by=changed_by,
        notes=notes,
        changed_at=stamp,
    )
    db.add(entry)
    assignment.stage_id = to_stage.id
    assignment.stage = to_stage
    assignment.last_updated = stamp
    return entry


def record_initial_placement(
    db: Session,
    assignment: Assignment,
    stage: Stage,
    changed_by: int | None = None,
) -> HistoryEntry:
    entry = HistoryEntry(
        order_id=assignment.order_id,
        from_stage_id=None,
        from_stage_name=None,
        to_stage_id=stage.id,
        to_stage_name=stage.name,
        changed_by=changed_by,
        notes=None,
        changed_at=assignment.last_updated,
    )
    db.add(entry)
    return entry


class TransitionEngine(BaseService):
    """Validates and commits single-order stage moves."""

    def __init__(self, db: Session | None = None, order_source: OrderSourceClient | None = None) -> None:
        super().__init__(db=db)
        self.order_source = order_source

    def transition(
        self,
        family_id: int,
        order_id: int,
        to_stage_id: int,
        changed_by: int | None,
        notes: str | None = None,
    ) -> TransitionResult:
        assignment = load_assignment(self.db, family_id, order_id)
        to_stage = resolve_stage(self.db, family_id, to_stage_id)
        from_stage_id = assignment.stage_id

        entry = record_transition(self.db, assignment, to_stage, changed_by=changed_by, notes=notes)
        if entry is None:
            logger.debug(
                "workflow.transition.noop",
                extra={"event": "workflow.transition.noop", "order_id": order_id, "stage_id": to_stage_id},
            )
            return TransitionResult(order_id=order_id, from_stage_id=from_stage_id, to_stage_id=to_stage.id, changed=False)

        self.commit()
        logger.info(
            "workflow.transition.accepted",
            extra={
                "event": "workflow.transition.accepted",
                "family_id": family_id,
                "order_id": order_id,
                "stage_id": to_stage.id,
                "user_id": changed_by,
            },
        )
        self.push_external_status(assignment, to_stage)
        return TransitionResult(
            order_id=order_id,
            from_stage_id=from_stage_id,
            to_stage_id=to_stage.id,
            changed=True,
            history_id=entry.id,
        )

    def push_external_status(self, assignment: Assignment, stage: Stage) -> None:
        if self.order_source is None or not stage.external_status:
            return
        if assignment.order is not None and assignment.order.status == stage.external_status:
            return
        self.order_source.push_status(assignment.order_id, stage.external_status)

    def history(self, family_id: int, order_id: int) -> list[HistoryEntry]:
        """Return the order's audit trail, oldest first."""
        load_assignment(self.db, family_id, order_id)
        return (
            self.db.query(HistoryEntry)
            .filter(HistoryEntry.order_id == order_id)
            .order_by(HistoryEntry.changed_at.asc(), HistoryEntry.id.asc())
            .all()
        )

"""Per-family pipeline definition: ordered, hideable stages."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import func

from app.core.enums import DEFAULT_STAGE_COLOR, DEFAULT_STAGES
from app.core.exceptions import InvalidPosition, InvalidStage, StageInUse
from app.models import Assignment, Stage
from app.services.base_service import BaseService
from app.services.transition_engine import record_transition, resolve_stage

logger = logging.getLogger(__name__)


class StageRegistry(BaseService):
    """Reads and edits a family's stages.

    Positions are always the contiguous range ``0..n-1``. Every write that
    touches positions goes through ``_apply_order`` so the unique
    ``(family_id, position)`` constraint is never violated mid-update.
    """

    def list_stages(self, family_id: int) -> list[Stage]:
        """All stages of the family, hidden included, left to right."""
        return (
            self.db.query(Stage)
            .filter(Stage.family_id == family_id)
            .order_by(Stage.position.asc())
            .all()
        )

    def get_stage(self, family_id: int, stage_id: int) -> Stage:
        return resolve_stage(self.db, family_id, stage_id)

    def first_stage(self, family_id: int) -> Stage | None:
        return (
            self.db.query(Stage)
            .filter(Stage.family_id == family_id)
            .order_by(Stage.position.asc())
            .first()
        )

    def assignment_count(self, stage_id: int) -> int:
        return self.db.query(func.count(Assignment.id)).filter(Assignment.stage_id == stage_id).scalar() or 0

    def create_stage(
        self,
        family_id: int,
        name: str,
        color: str | None = None,
        external_status: str | None = None,
        is_hidden: bool = False,
    ) -> Stage:
        """Append a stage after the current last column."""
        next_position = (
            self.db.query(func.max(Stage.position)).filter(Stage.family_id == family_id).scalar()
        )
        stage = Stage(
            family_id=family_id,
            name=name,
            color=color or DEFAULT_STAGE_COLOR,
            position=0 if next_position is None else next_position + 1,
            external_status=external_status,
            is_hidden=is_hidden,
        )
        self.db.add(stage)
        self.commit()
        self.db.refresh(stage)
        return stage

    def ensure_default_stages(self, family_id: int) -> list[Stage]:
        """Seed the standard pipeline for a family that has none."""
        existing = self.list_stages(family_id)
        if existing:
            return existing
        for position, (name, color, external_status) in enumerate(DEFAULT_STAGES):
            self.db.add(
                Stage(
                    family_id=family_id,
                    name=name,
                    color=color,
                    position=position,
                    external_status=external_status,
                )
            )
        self.commit()
        return self.list_stages(family_id)

    def _apply_order(self, ordered: Sequence[Stage]) -> None:
        # Park every row on a negative slot first so no two rows ever share a position.
        for index, stage in enumerate(ordered):
            stage.position = -(index + 1)
        self.db.flush()
        for index, stage in enumerate(ordered):
            stage.position = index
        self.db.flush()

    def reorder_stages(self, family_id: int, new_positions: Mapping[int, int]) -> list[Stage]:
        """Assign every stage a new position in one all-or-nothing step."""
        stages = self.list_stages(family_id)
        by_id = {stage.id: stage for stage in stages}

        unknown = sorted(set(new_positions) - set(by_id))
        if unknown:
            raise InvalidStage(f"Unknown stage ids: {unknown}")
        missing = sorted(set(by_id) - set(new_positions))
        if missing:
            raise InvalidPosition(f"Positions missing for stages: {missing}")

        values = list(new_positions.values())
        if len(set(values)) != len(values):
            raise InvalidPosition("Duplicate positions submitted.")
        if sorted(values) != list(range(len(stages))):
            raise InvalidPosition(f"Positions must be exactly 0..{len(stages) - 1}.")

        ordered = sorted(stages, key=lambda stage: new_positions[stage.id])
        try:
            self._apply_order(ordered)
            self.commit()
        except Exception:
            self.rollback()
            raise
        logger.info(
            "workflow.stages.reordered",
            extra={"event": "workflow.stages.reordered", "family_id": family_id},
        )
        return self.list_stages(family_id)

    def move_stage(self, family_id: int, stage_id: int, new_position: int) -> list[Stage]:
        """Move one stage; the stages in between shift by one."""
        stages = self.list_stages(family_id)
        stage = self.get_stage(family_id, stage_id)
        if not 0 <= new_position < len(stages):
            raise InvalidPosition(f"Position must be between 0 and {len(stages) - 1}.")

        ordered = [item for item in stages if item.id != stage.id]
        ordered.insert(new_position, stage)
        return self.reorder_stages(family_id, {item.id: index for index, item in enumerate(ordered)})

    def replace_stages(self, family_id: int, stages: Sequence[Mapping[str, Any]]) -> list[Stage]:
        """Bulk rename/recolor/reorder from a full list.

        List order defines positions. Entries with an ``id`` update that stage,
        entries without one create a stage, and stages left out are removed
        unless orders still sit in them.
        """
        if not stages:
            raise InvalidPosition("At least one stage is required.")

        existing = {stage.id: stage for stage in self.list_stages(family_id)}
        listed_ids = [item["id"] for item in stages if item.get("id") is not None]
        if len(set(listed_ids)) != len(listed_ids):
            raise InvalidPosition("A stage is listed more than once.")
        foreign = sorted(set(listed_ids) - set(existing))
        if foreign:
            raise InvalidStage(f"Unknown stage ids: {foreign}")

        removed = [stage for stage_id, stage in existing.items() if stage_id not in set(listed_ids)]
        for stage in removed:
            if self.assignment_count(stage.id):
                raise StageInUse(f"Stage '{stage.name}' still has orders; move them before removing it.")

        try:
            for stage in removed:
                self.db.delete(stage)
            self.db.flush()

            ordered: list[Stage] = []
            for index, item in enumerate(stages):
                stage = existing.get(item.get("id")) if item.get("id") is not None else None
                if stage is None:
                    stage = Stage(family_id=family_id, position=-(len(stages) + index + 1))
                    self.db.add(stage)
                stage.name = item["name"]
                stage.color = item.get("color") or stage.color or DEFAULT_STAGE_COLOR
                if "external_status" in item:
                    stage.external_status = item["external_status"]
                if "is_hidden" in item and item["is_hidden"] is not None:
                    stage.is_hidden = bool(item["is_hidden"])
                ordered.append(stage)
            self.db.flush()
            self._apply_order(ordered)
            self.commit()
        except Exception:
            self.rollback()
            raise

        logger.info(
            "workflow.stages.replaced",
            extra={"event": "workflow.stages.replaced", "family_id": family_id},
        )
        return self.list_stages(family_id)

    def set_hidden(self, family_id: int, stage_id: int, hidden: bool) -> Stage:
        """Toggle column visibility; assignments are untouched."""
        stage = self.get_stage(family_id, stage_id)
        stage.is_hidden = hidden
        self.commit()
        self.db.refresh(stage)
        return stage

    def delete_stage(
        self,
        family_id: int,
        stage_id: int,
        reassign_to: int | None = None,
        changed_by: int | None = None,
    ) -> list[Stage]:
        """Remove a stage, first moving its orders to ``reassign_to`` if given."""
        stage = self.get_stage(family_id, stage_id)
        in_use = self.assignment_count(stage.id)
        if in_use and reassign_to is None:
            raise StageInUse(f"Stage '{stage.name}' still has {in_use} order(s).")

        try:
            if in_use:
                if reassign_to == stage.id:
                    raise InvalidStage("Cannot reassign orders to the stage being deleted.")
                target = self.get_stage(family_id, reassign_to)
                assignments = self.db.query(Assignment).filter(Assignment.stage_id == stage.id).all()
                for assignment in assignments:
                    record_transition(
                        self.db,
                        assignment,
                        target,
                        changed_by=changed_by,
                        notes=f"Stage '{stage.name}' removed",
                    )
                self.db.flush()

            self.db.delete(stage)
            self.db.flush()
            remaining = (
                self.db.query(Stage)
                .filter(Stage.family_id == family_id)
                .order_by(Stage.position.asc())
                .all()
            )
            self._apply_order(remaining)
            self.commit()
        except Exception:
            self.rollback()
            raise

        logger.info(
            "workflow.stage.deleted",
            extra={"event": "workflow.stage.deleted", "family_id": family_id, "stage_id": stage_id},
        )
        return self.list_stages(family_id)

"""Apply one patch to many selected orders."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.core.enums import BULK_UPDATE_NOTE
from app.core.exceptions import BulkUpdateFailed, HomeBoardException, InvalidPatch
from app.services.assignment_store import AssignmentStore, validate_priority
from app.services.base_service import BaseService
from app.services.order_source import OrderSourceClient
from app.services.transition_engine import load_assignment, resolve_stage

logger = logging.getLogger(__name__)

BULK_FIELDS = frozenset({"stage_id", "assigned_to", "priority"})


@dataclass(frozen=True)
class BulkUpdateResult:
    requested: int
    updated: int


class BatchMutator(BaseService):
    """Bulk edits, committed order by order.

    The batch is not a transaction: each order is committed as it is
    processed, in ascending id order, and processing stops at the first
    failure. Earlier orders keep their changes and the caller gets a single
    ``BulkUpdateFailed`` with no per-order breakdown; re-read the board to see
    what landed.
    """

    def __init__(self, db: Session | None = None, order_source: OrderSourceClient | None = None) -> None:
        super().__init__(db=db)
        self.store = AssignmentStore(db=self.db, order_source=order_source)

    def bulk_update(
        self,
        family_id: int,
        order_ids: Iterable[int],
        patch: Mapping[str, Any],
        changed_by: int | None,
    ) -> BulkUpdateResult:
        targets = sorted(set(order_ids))
        if not targets:
            raise InvalidPatch("order_ids must contain at least one order.")
        unknown = sorted(set(patch) - BULK_FIELDS)
        if unknown:
            raise InvalidPatch(f"Unsupported bulk fields: {unknown}")
        if not patch:
            raise InvalidPatch("Bulk update needs at least one of stage_id, assigned_to, priority.")

        # Validation failures are reported before anything is written.
        for order_id in targets:
            load_assignment(self.db, family_id, order_id)
        if "stage_id" in patch:
            resolve_stage(self.db, family_id, patch["stage_id"])
        if "priority" in patch:
            validate_priority(patch["priority"])
        if "assigned_to" in patch:
            self.store.validate_assignee(family_id, patch["assigned_to"])

        updated = 0
        for order_id in targets:
            try:
                self.store.update_assignment(
                    family_id,
                    order_id,
                    patch,
                    changed_by=changed_by,
                    history_note=BULK_UPDATE_NOTE,
                )
            except HomeBoardException as exc:
                self.rollback()
                logger.error(
                    "workflow.bulk_update.partial_failure",
                    extra={
                        "event": "workflow.bulk_update.partial_failure",
                        "family_id": family_id,
                        "order_id": order_id,
                        "user_id": changed_by,
                    },
                )
                logger.error("workflow.bulk_update.partial_failure.details: %s", exc)
                raise BulkUpdateFailed(
                    f"Bulk update failed; some of the {len(targets)} orders may have been updated."
                ) from exc
            updated += 1

        logger.info(
            "workflow.bulk_update.completed",
            extra={"event": "workflow.bulk_update.completed", "family_id": family_id, "user_id": changed_by},
        )
        return BulkUpdateResult(requested=len(targets), updated=updated)

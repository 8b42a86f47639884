"""Optimistic board state with poll-based reconciliation.

The controller holds the last board fetched from the server (``confirmed``)
plus an ordered set of in-flight operations. The visible snapshot is always
``confirmed`` with every pending operation re-applied on top, so a poll that
lands mid-flight never hides a change the user just made.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.core.exceptions import InvalidPatch
from app.models.base import utcnow
from app.services.board_composer import AssignmentRecord, BoardView, StageRecord, board_stats, compose_board
from app.sync.client import BoardTransport

logger = logging.getLogger(__name__)

ORDER_FIELDS = frozenset({"stage_id", "assigned_to", "priority", "notes"})
BULK_FIELDS = frozenset({"stage_id", "assigned_to", "priority"})


@dataclass(frozen=True)
class PendingOperation:
    op_id: int
    order_ids: tuple[int, ...] = ()
    changes: Mapping[str, Any] = field(default_factory=dict)
    stage_visibility: tuple[int, bool] | None = None
    issued_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class BoardSnapshot:
    stages: tuple[StageRecord, ...] = ()
    assignments: tuple[AssignmentRecord, ...] = ()
    fetched_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], fetched_at: datetime | None = None) -> "BoardSnapshot":
        return cls(
            stages=tuple(StageRecord.from_payload(item) for item in payload.get("stages") or []),
            assignments=tuple(AssignmentRecord.from_payload(item) for item in payload.get("assignments") or []),
            fetched_at=fetched_at or utcnow(),
        )

    def assignment(self, order_id: int) -> AssignmentRecord | None:
        for record in self.assignments:
            if record.order_id == order_id:
                return record
        return None

    def apply(self, op: PendingOperation) -> "BoardSnapshot":
        """Return the snapshot as it would look once ``op`` is persisted."""
        stages = self.stages
        if op.stage_visibility is not None:
            stage_id, hidden = op.stage_visibility
            stages = tuple(
                dataclasses.replace(stage, is_hidden=hidden) if stage.id == stage_id else stage
                for stage in stages
            )
        targets = set(op.order_ids)
        assignments = tuple(
            _apply_changes(record, op.changes, op.issued_at) if record.order_id in targets else record
            for record in self.assignments
        )
        return BoardSnapshot(stages=stages, assignments=assignments, fetched_at=self.fetched_at)


def _apply_changes(record: AssignmentRecord, changes: Mapping[str, Any], at: datetime) -> AssignmentRecord:
    updates: dict[str, Any] = {}
    if "stage_id" in changes and changes["stage_id"] != record.stage_id:
        updates["stage_id"] = int(changes["stage_id"])
    if "priority" in changes:
        updates["priority"] = int(changes["priority"])
    if "notes" in changes:
        updates["notes"] = changes["notes"]
    if "assigned_to" in changes:
        updates["assigned_to"] = changes["assigned_to"]
        if changes["assigned_to"] != record.assigned_to:
            updates["assignee_name"] = None
    if not updates and set(changes) <= {"stage_id"}:
        return record
    updates["last_updated"] = at
    return record.with_changes(**updates)


class SyncController:
    """Keeps a client-side board in step with the workflow API."""

    def __init__(
        self,
        transport: BoardTransport,
        poll_interval_seconds: float = 120,
        filters: Mapping[str, Any] | None = None,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        self.transport = transport
        self.poll_interval_seconds = poll_interval_seconds
        self.filters: dict[str, Any] = dict(filters or {})
        self._confirmed = BoardSnapshot()
        self._pending: dict[int, PendingOperation] = {}
        self._op_ids = itertools.count(1)
        self._poll_task: asyncio.Task | None = None
        self._closed = False

    @property
    def snapshot(self) -> BoardSnapshot:
        current = self._confirmed
        for op in self._pending.values():
            current = current.apply(op)
        return current

    @property
    def pending(self) -> tuple[PendingOperation, ...]:
        return tuple(self._pending.values())

    @property
    def closed(self) -> bool:
        return self._closed

    def board_view(self, now: datetime | None = None) -> BoardView:
        current = self.snapshot
        return compose_board(current.stages, current.assignments, now=now)

    def stats(self) -> dict[str, Any]:
        return board_stats(self.board_view())

    async def resync(self) -> BoardSnapshot:
        """Replace confirmed state with the server's board."""
        payload = await self.transport.fetch_board(self.filters)
        if self._closed:
            return self.snapshot
        self._confirmed = BoardSnapshot.from_payload(payload)
        logger.debug(
            "sync.board.refreshed",
            extra={"event": "sync.board.refreshed", "pending": len(self._pending)},
        )
        return self.snapshot

    async def set_filters(self, filters: Mapping[str, Any]) -> BoardSnapshot:
        self.filters = dict(filters)
        return await self.resync()

    async def move_order(self, order_id: int, stage_id: int, notes: str | None = None) -> None:
        changes: dict[str, Any] = {"stage_id": stage_id}
        if notes is not None:
            changes["notes"] = notes
        await self.update_order(order_id, **changes)

    async def update_order(self, order_id: int, **changes: Any) -> None:
        _check_fields(changes, ORDER_FIELDS)
        op = self._new_op(order_ids=(order_id,), changes=changes)
        await self._submit(op, lambda: self.transport.update_order(order_id, changes))

    async def bulk_update(self, order_ids: Iterable[int], **patch: Any) -> None:
        ids = tuple(dict.fromkeys(int(order_id) for order_id in order_ids))
        _check_fields(patch, BULK_FIELDS)
        op = self._new_op(order_ids=ids, changes=patch)
        await self._submit(op, lambda: self.transport.bulk_update(ids, patch))

    async def set_stage_hidden(self, stage_id: int, hidden: bool) -> None:
        op = self._new_op(stage_visibility=(stage_id, hidden))
        await self._submit(op, lambda: self.transport.set_stage_visibility(stage_id, hidden))

    def _new_op(self, **kwargs: Any) -> PendingOperation:
        return PendingOperation(op_id=next(self._op_ids), **kwargs)

    async def _submit(self, op: PendingOperation, call: Callable[[], Awaitable[Any]]) -> None:
        self._pending[op.op_id] = op
        try:
            await call()
        except Exception as exc:
            self._pending.pop(op.op_id, None)
            if self._closed:
                return
            logger.warning(
                "sync.mutation.failed",
                extra={"event": "sync.mutation.failed", "op_id": op.op_id, "error_code": _error_code(exc)},
            )
            await self._resync_quietly()
            raise
        finally:
            self._pending.pop(op.op_id, None)
        if not self._closed:
            # The server accepted it, so it becomes part of confirmed state until the next poll.
            self._confirmed = self._confirmed.apply(op)

    async def _resync_quietly(self) -> None:
        try:
            await self.resync()
        except Exception as exc:
            logger.warning(
                "sync.resync.failed",
                extra={"event": "sync.resync.failed", "error_code": _error_code(exc)},
            )

    async def _poll_loop(self) -> None:
        while not self._closed:
            await self._resync_quietly()
            await asyncio.sleep(self.poll_interval_seconds)

    def start(self) -> None:
        """Begin polling on the running event loop. Calling twice is a no-op."""
        if self._closed:
            raise RuntimeError("SyncController is closed")
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def close(self) -> None:
        """Stop polling; responses that arrive afterwards are discarded."""
        self._closed = True
        self._pending.clear()
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None


def _check_fields(changes: Mapping[str, Any], allowed: frozenset[str]) -> None:
    if not changes:
        raise InvalidPatch("No fields to update.")
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise InvalidPatch(f"Unsupported fields: {unknown}")


def _error_code(exc: Exception) -> str:
    return getattr(exc, "error_code", type(exc).__name__)

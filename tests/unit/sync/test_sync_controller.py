from __future__ import annotations

import asyncio

import pytest

from app.core.exceptions import InvalidPatch, InvalidStage, NetworkFailure
from app.sync.controller import SyncController

STAGES = [
    {"id": 1, "family_id": 1, "name": "Ready to Make", "color": "#3B82F6", "position": 0, "is_hidden": False},
    {"id": 2, "family_id": 1, "name": "Making", "color": "#8B5CF6", "position": 1, "is_hidden": False},
    {"id": 3, "family_id": 1, "name": "Packed", "color": "#059669", "position": 2, "is_hidden": False},
]


def _assignment(order_id: int, stage_id: int, priority: int = 0) -> dict:
    return {
        "order_id": order_id,
        "stage_id": stage_id,
        "priority": priority,
        "assigned_to": None,
        "last_updated": "2026-05-01T08:00:00",
        "order": {"id": order_id},
    }


class FakeTransport:
    """In-memory server double; ``gate`` lets a test hold a mutation in flight."""

    def __init__(self) -> None:
        self.board = {"stages": [dict(stage) for stage in STAGES], "assignments": [_assignment(1, 1), _assignment(2, 1)]}
        self.fail_with: Exception | None = None
        self.fetch_fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.fetches = 0
        self.calls: list[tuple] = []

    async def _maybe_block(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    def _server_apply(self, order_id: int, changes: dict) -> None:
        for row in self.board["assignments"]:
            if row["order_id"] == order_id:
                row.update(changes)

    async def fetch_board(self, filters=None):
        self.fetches += 1
        self.calls.append(("fetch", dict(filters or {})))
        if self.fetch_fail_with is not None:
            exc, self.fetch_fail_with = self.fetch_fail_with, None
            raise exc
        return {
            "stages": [dict(stage) for stage in self.board["stages"]],
            "assignments": [dict(row) for row in self.board["assignments"]],
        }

    async def update_order(self, order_id, changes):
        self.calls.append(("update", order_id, dict(changes)))
        await self._maybe_block()
        self._server_apply(order_id, dict(changes))
        return {"status": "ok"}

    async def bulk_update(self, order_ids, patch):
        self.calls.append(("bulk", tuple(order_ids), dict(patch)))
        await self._maybe_block()
        for order_id in order_ids:
            self._server_apply(order_id, dict(patch))
        return {"status": "ok"}

    async def set_stage_visibility(self, stage_id, hidden):
        self.calls.append(("visibility", stage_id, hidden))
        await self._maybe_block()
        for stage in self.board["stages"]:
            if stage["id"] == stage_id:
                stage["is_hidden"] = hidden
        return {"stage_id": stage_id, "is_hidden": hidden}


def _stage_of(controller: SyncController, order_id: int) -> int:
    return controller.snapshot.assignment(order_id).stage_id


@pytest.mark.asyncio
async def test_resync_loads_board():
    controller = SyncController(FakeTransport(), poll_interval_seconds=120)
    snapshot = await controller.resync()
    assert [stage.name for stage in snapshot.stages] == ["Ready to Make", "Making", "Packed"]
    assert controller.board_view().column(1).total == 2


@pytest.mark.asyncio
async def test_move_is_visible_before_the_server_answers():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.gate = asyncio.Event()

    task = asyncio.create_task(controller.move_order(1, 3))
    await asyncio.sleep(0)

    assert _stage_of(controller, 1) == 3
    assert len(controller.pending) == 1

    transport.gate.set()
    await task
    assert controller.pending == ()
    assert _stage_of(controller, 1) == 3
    assert transport.fetches == 1


@pytest.mark.asyncio
async def test_failed_move_discards_optimistic_state_and_reloads():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.fail_with = InvalidStage("Stage 3 does not exist in this family.")

    with pytest.raises(InvalidStage):
        await controller.move_order(1, 3)

    assert _stage_of(controller, 1) == 1
    assert controller.pending == ()
    assert transport.fetches == 2


@pytest.mark.asyncio
async def test_network_failure_on_bulk_surfaces_single_error_and_reloads():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.fail_with = NetworkFailure("connection reset")

    with pytest.raises(NetworkFailure):
        await controller.bulk_update([1, 2], priority=2)

    assert {record.priority for record in controller.snapshot.assignments} == {0}
    assert transport.fetches == 2


@pytest.mark.asyncio
async def test_unexpected_failure_still_drops_the_optimistic_move():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.fail_with = ValueError("response body is not JSON")

    with pytest.raises(ValueError):
        await controller.move_order(1, 3)
    await controller.resync()

    assert controller.pending == ()
    assert _stage_of(controller, 1) == 1


@pytest.mark.asyncio
async def test_polling_survives_a_failed_refresh():
    transport = FakeTransport()
    transport.fetch_fail_with = RuntimeError("decoding failed")
    controller = SyncController(transport, poll_interval_seconds=0.01)
    controller.start()
    await asyncio.sleep(0.05)
    await controller.close()

    assert transport.fetches >= 2
    assert _stage_of(controller, 2) == 1


@pytest.mark.asyncio
async def test_poll_during_pending_move_keeps_optimistic_state():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.gate = asyncio.Event()

    task = asyncio.create_task(controller.move_order(2, 2))
    await asyncio.sleep(0)
    await controller.resync()

    assert _stage_of(controller, 2) == 2
    transport.gate.set()
    await task
    await controller.resync()
    assert _stage_of(controller, 2) == 2


@pytest.mark.asyncio
async def test_last_response_to_land_wins_for_same_order():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.gate = asyncio.Event()

    first = asyncio.create_task(controller.move_order(1, 2))
    second = asyncio.create_task(controller.move_order(1, 3))
    await asyncio.sleep(0)
    assert _stage_of(controller, 1) == 3

    transport.gate.set()
    await asyncio.gather(first, second)
    assert _stage_of(controller, 1) == 3


@pytest.mark.asyncio
async def test_hiding_a_stage_keeps_stats_totals():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    before = controller.stats()

    await controller.set_stage_hidden(1, True)

    assert controller.snapshot.stages[0].is_hidden is True
    assert [column.stage.id for column in controller.board_view().visible_columns] == [2, 3]
    assert controller.stats()["total_orders"] == before["total_orders"] == 2


@pytest.mark.asyncio
async def test_responses_after_close_are_ignored():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.gate = asyncio.Event()

    task = asyncio.create_task(controller.move_order(1, 3))
    await asyncio.sleep(0)
    await controller.close()
    transport.gate.set()
    await task

    assert controller.closed
    assert _stage_of(controller, 1) == 1
    transport.board["assignments"] = []
    await controller.resync()
    assert controller.snapshot.assignment(1) is not None


@pytest.mark.asyncio
async def test_failure_after_close_is_swallowed():
    transport = FakeTransport()
    controller = SyncController(transport)
    await controller.resync()
    transport.gate = asyncio.Event()
    transport.fail_with = NetworkFailure("late")

    task = asyncio.create_task(controller.move_order(1, 3))
    await asyncio.sleep(0)
    await controller.close()
    transport.gate.set()
    await task
    assert transport.fetches == 1


@pytest.mark.asyncio
async def test_polling_refreshes_on_interval_until_closed():
    transport = FakeTransport()
    controller = SyncController(transport, poll_interval_seconds=0.01)
    controller.start()
    controller.start()
    await asyncio.sleep(0.05)
    await controller.close()
    fetched = transport.fetches

    assert fetched >= 2
    await asyncio.sleep(0.03)
    assert transport.fetches == fetched


@pytest.mark.asyncio
async def test_set_filters_passes_them_to_fetch():
    transport = FakeTransport()
    controller = SyncController(transport, filters={"font": "script"})
    await controller.resync()
    await controller.set_filters({"board_style": "oak"})
    assert [call[1] for call in transport.calls if call[0] == "fetch"] == [{"font": "script"}, {"board_style": "oak"}]


@pytest.mark.asyncio
async def test_local_validation_rejects_unknown_fields_without_network():
    transport = FakeTransport()
    controller = SyncController(transport)
    with pytest.raises(InvalidPatch):
        await controller.update_order(1, colour="red")
    with pytest.raises(InvalidPatch):
        await controller.bulk_update([1], notes="bulk notes are not supported")
    assert transport.calls == []


def test_poll_interval_must_be_positive():
    with pytest.raises(ValueError):
        SyncController(FakeTransport(), poll_interval_seconds=0)

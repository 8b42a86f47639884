"""Order workflow board endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Header, HTTPException, Query, status

from app.api.v1._authz import authorize, map_auth_error
from app.api.v1._errors import to_http_exception
from app.core.config import get_config
from app.core.dependencies import CurrentUser
from app.core.exceptions import HomeBoardException
from app.database.db import get_db_session
from app.schemas.common import APIEnvelope
from app.schemas.workflow import (
    BulkUpdateRequest,
    FilterOptionsResponse,
    HistoryEntryResponse,
    OrderPatchRequest,
    StageCreateRequest,
    StageListUpdateRequest,
    StageMoveRequest,
    StageResponse,
    StageVisibilityRequest,
    StatsResponse,
)
from app.services.assignment_store import AssignmentStore, BoardFilters, parse_date_bound
from app.services.batch_mutator import BatchMutator
from app.services.board_composer import AssignmentRecord, StageRecord, board_stats, compose_board
from app.services.order_source import OrderSourceClient
from app.services.stage_registry import StageRegistry
from app.services.transition_engine import TransitionEngine

router = APIRouter(prefix="/workflow", tags=["workflow"])


def _authorize(authorization: str | None, scopes: list[str]) -> CurrentUser:
    try:
        return authorize(authorization=authorization, scopes=scopes)
    except Exception as exc:
        code, detail = map_auth_error(exc)
        raise HTTPException(status_code=code, detail=detail) from exc


def _order_source() -> OrderSourceClient | None:
    return OrderSourceClient.from_config()


def _stages_payload(stages) -> list[dict]:
    return [StageResponse.model_validate(stage).model_dump() for stage in stages]


@router.get("/board")
def get_board(
    date_from: str | None = Query(default=None, max_length=40),
    date_to: str | None = Query(default=None, max_length=40),
    board_style: str | None = Query(default=None, max_length=120),
    font: str | None = Query(default=None, max_length=120),
    board_color: str | None = Query(default=None, max_length=120),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict:
    user = _authorize(authorization, scopes=["workflow.read"])
    try:
        filters = BoardFilters(
            date_from=parse_date_bound(date_from),
            date_to=parse_date_bound(date_to, end_of_day=True),
            classifications={"board_style": board_style or "", "font": font or "", "board_color": board_color or ""},
        )
    except HomeBoardException as exc:
        raise to_http_exception(exc) from exc
    with get_db_session() as session:
        board = AssignmentStore(db=session).get_board(user.family_id, filters)
        return {
            "stages": _stages_payload(board.stages),
            "assignments": [AssignmentRecord.from_model(item).to_payload() for item in board.assignments],
        }


@router.get("/stats", response_model=StatsResponse)
def get_stats(authorization: str | None = Header(default=None, alias="Authorization")) -> dict:
    user = _authorize(authorization, scopes=["workflow.read"])
    with get_db_session() as session:
        board = AssignmentStore(db=session).get_board(user.family_id)
        view = compose_board(
            [StageRecord.from_model(stage) for stage in board.stages],
            [AssignmentRecord.from_model(item) for item in board.assignments],
        )
    return board_stats(view)


@router.get("/stages")
def list_stages(authorization: str | None = Header(default=None, alias="Authorization")) -> list[dict]:
    user = _authorize(authorization, scopes=["workflow.read"])
    with get_db_session() as session:
        return _stages_payload(StageRegistry(db=session).list_stages(user.family_id))


@router.put("/stages")
def replace_stages(
    payload: StageListUpdateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict]:
    user = _authorize(authorization, scopes=["workflow.configure"])
    items = [stage.model_dump(exclude_unset=True) for stage in payload.stages]
    with get_db_session() as session:
        try:
            stages = StageRegistry(db=session).replace_stages(user.family_id, items)
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
        return _stages_payload(stages)


@router.post("/stages", status_code=status.HTTP_201_CREATED)
def create_stage(
    payload: StageCreateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict:
    user = _authorize(authorization, scopes=["workflow.configure"])
    with get_db_session() as session:
        try:
            stage = StageRegistry(db=session).create_stage(
                user.family_id,
                name=payload.name,
                color=payload.color,
                external_status=payload.external_status,
                is_hidden=payload.is_hidden,
            )
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
        return StageResponse.model_validate(stage).model_dump()


@router.post("/stages/{stage_id}/move")
def move_stage(
    stage_id: int,
    payload: StageMoveRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict]:
    user = _authorize(authorization, scopes=["workflow.configure"])
    with get_db_session() as session:
        try:
            stages = StageRegistry(db=session).move_stage(user.family_id, stage_id, payload.position)
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
        return _stages_payload(stages)


@router.put("/stages/{stage_id}/visibility")
def set_stage_visibility(
    stage_id: int,
    payload: StageVisibilityRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict:
    user = _authorize(authorization, scopes=["workflow.write"])
    with get_db_session() as session:
        try:
            stage = StageRegistry(db=session).set_hidden(user.family_id, stage_id, payload.is_hidden)
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
        return {
            "stage_id": stage.id,
            "is_hidden": stage.is_hidden,
            "message": f"Stage visibility updated to {'hidden' if stage.is_hidden else 'visible'}",
        }


@router.delete("/stages/{stage_id}")
def delete_stage(
    stage_id: int,
    reassign_to: int | None = Query(default=None, ge=1),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict]:
    user = _authorize(authorization, scopes=["workflow.configure"])
    with get_db_session() as session:
        try:
            stages = StageRegistry(db=session).delete_stage(
                user.family_id, stage_id, reassign_to=reassign_to, changed_by=user.user_id
            )
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
        return _stages_payload(stages)


@router.put("/orders/{order_id}", response_model=APIEnvelope)
def update_order(
    order_id: int,
    payload: OrderPatchRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict:
    user = _authorize(authorization, scopes=["workflow.write"])
    with get_db_session() as session:
        try:
            AssignmentStore(db=session, order_source=_order_source()).update_assignment(
                user.family_id, order_id, payload.changes(), changed_by=user.user_id
            )
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
    return {"status": "ok", "message": "Order updated successfully"}


@router.post("/bulk-update", response_model=APIEnvelope)
def bulk_update(
    payload: BulkUpdateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict:
    user = _authorize(authorization, scopes=["workflow.write"])
    with get_db_session() as session:
        try:
            result = BatchMutator(db=session, order_source=_order_source()).bulk_update(
                user.family_id, payload.order_ids, payload.patch(), changed_by=user.user_id
            )
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
    return {"status": "ok", "message": f"{result.updated} orders updated successfully"}


@router.get("/orders/{order_id}/history")
def get_order_history(
    order_id: int,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict]:
    user = _authorize(authorization, scopes=["workflow.read"])
    with get_db_session() as session:
        try:
            entries = TransitionEngine(db=session).history(user.family_id, order_id)
        except HomeBoardException as exc:
            raise to_http_exception(exc) from exc
        return [
            HistoryEntryResponse(
                id=entry.id,
                order_id=entry.order_id,
                from_stage_id=entry.from_stage_id,
                from_stage_name=entry.from_stage_name,
                to_stage_id=entry.to_stage_id,
                to_stage_name=entry.to_stage_name,
                changed_by=entry.changed_by,
                changed_by_name=entry.actor.display_name if entry.actor is not None else None,
                notes=entry.notes,
                changed_at=entry.changed_at,
            ).model_dump()
            for entry in entries
        ]


@router.get("/overdue")
def list_overdue(
    hours: int | None = Query(default=None, ge=1, le=24 * 365),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict]:
    user = _authorize(authorization, scopes=["workflow.read"])
    threshold = hours or get_config().OVERDUE_THRESHOLD_HOURS
    with get_db_session() as session:
        rows = AssignmentStore(db=session).overdue(user.family_id, hours=threshold)
        return [AssignmentRecord.from_model(item).to_payload() for item in rows]


@router.get("/filters/options", response_model=FilterOptionsResponse)
def get_filter_options(authorization: str | None = Header(default=None, alias="Authorization")) -> dict:
    user = _authorize(authorization, scopes=["workflow.read"])
    with get_db_session() as session:
        return AssignmentStore(db=session).filter_options(user.family_id)

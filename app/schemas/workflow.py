"""Workflow board request/response schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.enums import Priority


class StageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    family_id: int
    name: str
    color: str
    position: int
    external_status: str | None = None
    is_hidden: bool = False


class StageWrite(BaseModel):
    id: int | None = Field(default=None, ge=1)
    name: str = Field(min_length=1, max_length=120)
    color: str | None = Field(default=None, max_length=16)
    external_status: str | None = Field(default=None, max_length=40)
    is_hidden: bool | None = None


class StageListUpdateRequest(BaseModel):
    stages: list[StageWrite] = Field(min_length=1)


class StageCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    color: str | None = Field(default=None, max_length=16)
    external_status: str | None = Field(default=None, max_length=40)
    is_hidden: bool = False


class StageMoveRequest(BaseModel):
    position: int = Field(ge=0)


class StageVisibilityRequest(BaseModel):
    is_hidden: bool


class OrderPatchRequest(BaseModel):
    """Fields left out are untouched; ``assigned_to: null`` unassigns."""

    stage_id: int | None = Field(default=None, ge=1)
    assigned_to: int | None = Field(default=None, ge=1)
    priority: int | None = Field(default=None, ge=int(Priority.NORMAL), le=int(Priority.RUSH))
    notes: str | None = Field(default=None, max_length=10000)

    @field_validator("stage_id", "priority")
    @classmethod
    def not_null_when_sent(cls, value: int | None) -> int | None:
        if value is None:
            raise ValueError("must not be null")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class BulkUpdateRequest(BaseModel):
    order_ids: list[int] = Field(min_length=1)
    stage_id: int | None = Field(default=None, ge=1)
    assigned_to: int | None = Field(default=None, ge=1)
    priority: int | None = Field(default=None, ge=int(Priority.NORMAL), le=int(Priority.RUSH))

    @field_validator("stage_id", "priority")
    @classmethod
    def not_null_when_sent(cls, value: int | None) -> int | None:
        if value is None:
            raise ValueError("must not be null")
        return value

    def patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"order_ids"})


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    from_stage_id: int | None = None
    from_stage_name: str | None = None
    to_stage_id: int
    to_stage_name: str
    changed_by: int | None = None
    changed_by_name: str | None = None
    notes: str | None = None
    changed_at: datetime


class StageStats(BaseModel):
    stage_id: int
    stage_name: str
    total_orders: int
    rush_orders: int


class StatsResponse(BaseModel):
    per_stage: list[StageStats]
    total_orders: int
    unassigned_orders: int


class FilterOptionsResponse(BaseModel):
    board_style: list[str]
    font: list[str]
    board_color: list[str]

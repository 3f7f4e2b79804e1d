"""API response/request schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from newsdesk.schemas.events import EventView, PipelineStats, StageResult


# -- Stages --

class MergeRequest(BaseModel):
    window_hours: Optional[int] = Field(default=None, ge=1, le=24 * 30)


class ProcessAllResponse(BaseModel):
    summarization: StageResult
    event_mapping: StageResult
    aggregation: StageResult


# -- Events --

class EventListResponse(BaseModel):
    count: int
    events: List[EventView] = Field(default_factory=list)


class StatsResponse(BaseModel):
    pipeline: PipelineStats
    aggregation: Dict[str, Any] = Field(default_factory=dict)
    merge: Dict[str, Any] = Field(default_factory=dict)
    summarization: Dict[str, Any] = Field(default_factory=dict)


class IngestResponse(BaseModel):
    saved: int
    duplicates: int


# -- Monitoring --

class CanUseResponse(BaseModel):
    key_name: str
    operation: str
    can_use: bool


class UsageLogResponse(BaseModel):
    count: int
    logs: List[Dict[str, Any]] = Field(default_factory=list)

"""
Event-side data models.

Three groups live here:
  - Prompt payloads: the compact article/event views serialized into prompts.
  - Read-side views: EventView (with discrepancy flag and member articles).
  - Stage reporting: StageResult, PipelineStats, KeyPoolHealth.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import KeyHealthStatus, StageStatus, has_discrepancies
from .news import ArticleReference


# ══════════════════════════════════════════════════════════════════════════════
# PROMPT PAYLOADS
# ══════════════════════════════════════════════════════════════════════════════

class _CamelPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_prompt(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ArticleForSummary(_CamelPayload):
    id: int
    title: str
    content: str


class ArticleForClustering(_CamelPayload):
    id: int
    title: str
    summary: str
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    source: str


class ArticleForAggregation(_CamelPayload):
    source: str
    title: str
    content: str
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    url: str = ""


class EventForMerge(_CamelPayload):
    id: int
    title: str
    event_type: str = Field(default="", alias="eventType")
    article_count: int = Field(default=0, alias="articleCount")
    confidence_score: float = Field(default=0.0, alias="confidenceScore")
    event_date: str = Field(default="", alias="eventDate")


# ══════════════════════════════════════════════════════════════════════════════
# READ-SIDE VIEWS
# ══════════════════════════════════════════════════════════════════════════════

class EventView(BaseModel):
    """An event as surfaced to the API/UI."""
    id: int
    title: str
    event_type: str = ""
    aggregated_summary: Optional[str] = None
    discrepancies: Optional[str] = None
    article_count: int = 0
    event_date: Optional[datetime] = None
    is_processed: bool = False
    confidence_score: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    has_discrepancies: bool = False
    articles: List[ArticleReference] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row, articles: Optional[List[ArticleReference]] = None) -> "EventView":
        return cls(
            id=row.id,
            title=row.title,
            event_type=row.event_type or "",
            aggregated_summary=row.aggregated_summary,
            discrepancies=row.discrepancies,
            article_count=row.article_count or 0,
            event_date=row.event_date,
            is_processed=bool(row.is_processed),
            confidence_score=row.confidence_score or 0.0,
            created_at=row.created_at,
            updated_at=row.updated_at,
            has_discrepancies=bool(row.is_processed) and has_discrepancies(row.discrepancies),
            articles=articles or [],
        )


class EventFilter(BaseModel):
    """Optional filters for listing events."""
    is_processed: Optional[bool] = None
    event_type: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_article_count: Optional[int] = None
    min_confidence: Optional[float] = None
    limit: int = Field(default=50, ge=1, le=500)


# ══════════════════════════════════════════════════════════════════════════════
# STAGE REPORTING
# ══════════════════════════════════════════════════════════════════════════════

class StageResult(BaseModel):
    """Outcome of one stage run: a human-readable message plus counters."""
    stage: str
    status: StageStatus
    message: str
    counters: Dict[str, int] = Field(default_factory=dict)
    details: Dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class PipelineStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_articles: int = Field(default=0, alias="totalArticles")
    summarized: int = 0
    mapped: int = 0
    unmapped: int = 0
    total_events: int = Field(default=0, alias="totalEvents")
    processed: int = 0
    unprocessed: int = 0
    avg_confidence: float = Field(default=0.0, alias="avgConfidence")
    avg_article_count: float = Field(default=0.0, alias="avgArticleCount")


class KeyPoolHealth(BaseModel):
    status: KeyHealthStatus
    available_count: int
    total: int
    health_percentage: float
    per_key: Dict[str, bool] = Field(default_factory=dict)

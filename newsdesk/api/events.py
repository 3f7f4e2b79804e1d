"""Events API router -- stage triggers, statistics and event views.

Mutating routes (stage triggers) sit behind the X-API-Key gate. A stage that
cannot proceed at all raises StageError, which main.py maps to HTTP 502.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from newsdesk.api.dependencies import Pipeline, verify_api_key
from newsdesk.api.schemas import (
    EventListResponse,
    IngestResponse,
    MergeRequest,
    ProcessAllResponse,
    StatsResponse,
)
from newsdesk.schemas.events import EventFilter, EventView, StageResult
from newsdesk.schemas.news import ArticleIn

logger = logging.getLogger(__name__)

router = APIRouter()


# -- Stage triggers --

@router.post("/summarize-all", response_model=StageResult, dependencies=[Depends(verify_api_key)])
async def summarize_all(pipeline: Pipeline, limit: Optional[int] = Query(default=None, ge=1)):
    return await pipeline.run_summarization(limit=limit)


@router.post("/map-all", response_model=StageResult, dependencies=[Depends(verify_api_key)])
async def map_all(pipeline: Pipeline):
    return await pipeline.run_event_mapping()


@router.post("/aggregate-all", response_model=StageResult, dependencies=[Depends(verify_api_key)])
async def aggregate_all(pipeline: Pipeline):
    return await pipeline.run_aggregation()


@router.post("/merge", response_model=StageResult, dependencies=[Depends(verify_api_key)])
async def merge(pipeline: Pipeline, body: Optional[MergeRequest] = None):
    window = body.window_hours if body else None
    return await pipeline.run_merge(window)


@router.post("/process-all", response_model=ProcessAllResponse, dependencies=[Depends(verify_api_key)])
async def process_all(pipeline: Pipeline):
    return ProcessAllResponse(**await pipeline.process_all())


@router.post("/ingest", response_model=IngestResponse, dependencies=[Depends(verify_api_key)])
def ingest(articles: List[ArticleIn], pipeline: Pipeline):
    return IngestResponse(**pipeline.ingest(articles))


# -- Read side --

@router.get("/stats", response_model=StatsResponse)
def stats(pipeline: Pipeline):
    return StatsResponse(
        pipeline=pipeline.get_pipeline_stats(),
        aggregation=pipeline.aggregation_stats(),
        merge=pipeline.merge_stats(),
        summarization=pipeline.summarization_stats(),
    )


@router.get("/recent", response_model=EventListResponse)
def recent_events(
    pipeline: Pipeline,
    hours: int = Query(default=24, ge=1, le=24 * 30),
    limit: int = Query(default=20, ge=1, le=200),
):
    events = pipeline.recent_events(hours=hours, limit=limit)
    return EventListResponse(count=len(events), events=events)


@router.get("", response_model=EventListResponse)
def list_events(
    pipeline: Pipeline,
    processed: Optional[bool] = None,
    event_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    min_articles: Optional[int] = Query(default=None, ge=1),
    min_confidence: Optional[float] = Query(default=None, ge=0.0, le=1.0),
    with_articles: bool = False,
    limit: int = Query(default=50, ge=1, le=500),
):
    filters = EventFilter(
        is_processed=processed,
        event_type=event_type,
        date_from=date_from,
        date_to=date_to,
        min_article_count=min_articles,
        min_confidence=min_confidence,
        limit=limit,
    )
    events = pipeline.list_events(filters, with_articles=with_articles)
    return EventListResponse(count=len(events), events=events)


@router.get("/{event_id}", response_model=EventView)
def get_event(event_id: int, pipeline: Pipeline):
    event = pipeline.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Event {event_id} not found")
    return event

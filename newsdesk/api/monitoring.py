"""Monitoring API router -- key-pool health and usage-ledger views."""

from typing import Optional

from fastapi import APIRouter, Query

from newsdesk.api.dependencies import Monitor, Pipeline
from newsdesk.api.schemas import CanUseResponse, UsageLogResponse
from newsdesk.schemas.base import Operation
from newsdesk.schemas.events import KeyPoolHealth

router = APIRouter()


@router.get("/health", response_model=KeyPoolHealth)
def key_health(pipeline: Pipeline):
    return pipeline.pool.health()


@router.get("/usage")
def detailed_usage(monitor: Monitor):
    return monitor.detailed_usage()


@router.get("/recommendations")
def recommendations(monitor: Monitor):
    return {"recommendations": monitor.recommendations()}


@router.get("/logs", response_model=UsageLogResponse)
def usage_logs(
    monitor: Monitor,
    key: Optional[str] = None,
    operation: Optional[Operation] = None,
    limit: int = Query(default=50, ge=1, le=500),
):
    logs = monitor.recent_logs(limit=limit, key_name=key, operation=operation)
    return UsageLogResponse(count=len(logs), logs=logs)


@router.get("/failures", response_model=UsageLogResponse)
def usage_failures(monitor: Monitor, limit: int = Query(default=20, ge=1, le=500)):
    logs = monitor.recent_logs(limit=limit, failures_only=True)
    return UsageLogResponse(count=len(logs), logs=logs)


@router.get("/operations/{operation}")
def usage_by_operation(operation: Operation, monitor: Monitor):
    return monitor.usage_by_operation(operation)


@router.get("/can-use", response_model=CanUseResponse)
def can_use(key: str, operation: Operation, pipeline: Pipeline):
    return CanUseResponse(
        key_name=key,
        operation=operation.value,
        can_use=pipeline.pool.can_use(key, operation),
    )

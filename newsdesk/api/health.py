"""Health check router -- key-pool status, DB status, config summary."""

from datetime import datetime, timezone

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from newsdesk import __version__
from newsdesk.api.dependencies import AppSettings, DB, Pipeline

router = APIRouter()


@router.get("/")
async def root():
    return {"service": "newsdesk event pipeline API", "version": __version__}


@router.get("/health")
def health(settings: AppSettings, db: DB, pipeline: Pipeline):
    try:
        with db.get_session() as session:
            session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        database = f"error: {e}"

    keys = pipeline.pool.health()
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": database,
        "key_pool": keys.model_dump(mode="json"),
        "config": {
            "llm": settings.get_llm_config(),
            "summarization_batch_size": settings.summarization_batch_size,
            "summarization_delay_seconds": settings.summarization_delay_seconds,
            "aggregation_delay_seconds": settings.aggregation_delay_seconds,
            "merge_window_hours": settings.merge_window_hours,
            "merge_min_confidence": settings.merge_min_confidence,
            "api_key_required": bool(settings.api_key),
        },
    }

"""
Event aggregation - cross-source summary and discrepancy report per event.

Single-article events are passed through without a model call. Events with
two or more articles get one aggregation call each, with a cooperative delay
between calls. Each event is committed on its own: a failed call leaves that
event unprocessed for the next run and the loop moves on.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..config import Settings, get_settings
from ..database import Database, utcnow
from ..schemas.base import (
    SINGLE_ARTICLE_CONFIDENCE,
    SINGLE_ARTICLE_PREFIX,
    SINGLE_SOURCE_DISCREPANCY,
    StageStatus,
)
from ..schemas.events import ArticleForAggregation, StageResult
from ..schemas.llm_outputs import AggregationResultLLM
from ..tools.prompt_gateway import PromptGateway
from ..tools.prompts import EVENT_AGGREGATION
from .repository import EventRepository, MappingRepository

logger = logging.getLogger(__name__)

STAGE = "aggregation"

PROCESSED = "processed"
SINGLE = "single"
ERROR = "error"
SKIPPED = "skipped"


class AggregationEngine:

    def __init__(self, db: Database, gateway: PromptGateway, settings: Optional[Settings] = None):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._calls_made = 0

    async def run(self) -> StageResult:
        with self.db.get_session() as session:
            event_ids = [e.id for e in EventRepository(session).find_unprocessed()]

        if not event_ids:
            logger.info("Aggregation: no unprocessed events, nothing to do")
            return StageResult(
                stage=STAGE,
                status=StageStatus.NOTHING_TO_DO,
                message="No unprocessed events - nothing to aggregate",
                counters={"candidates": 0},
            )

        logger.info(f"Aggregation: {len(event_ids)} unprocessed events")
        self._calls_made = 0
        outcomes: Dict[str, int] = {PROCESSED: 0, SINGLE: 0, ERROR: 0, SKIPPED: 0}
        failed_ids: List[int] = []
        for event_id in event_ids:
            outcome = await self.process_event(event_id)
            outcomes[outcome] += 1
            if outcome == ERROR:
                failed_ids.append(event_id)

        succeeded = outcomes[PROCESSED] + outcomes[SINGLE]
        message = (
            f"Aggregation completed - success: {succeeded} "
            f"({outcomes[SINGLE]} single-source), failed: {outcomes[ERROR]}, skipped: {outcomes[SKIPPED]}"
        )
        logger.info(message)
        status = StageStatus.COMPLETED if not outcomes[ERROR] else (
            StageStatus.PARTIAL if succeeded else StageStatus.FAILED
        )
        return StageResult(
            stage=STAGE,
            status=status,
            message=message,
            counters={
                "candidates": len(event_ids),
                "processed": succeeded,
                "single_article": outcomes[SINGLE],
                "ai_aggregated": outcomes[PROCESSED],
                "errors": outcomes[ERROR],
                "skipped": outcomes[SKIPPED],
            },
            details={"failed_event_ids": failed_ids},
        )

    async def process_event(self, event_id: int) -> str:
        """Aggregate one event. Returns processed | single | error | skipped."""
        with self.db.get_session() as session:
            event = EventRepository(session).find_by_id(event_id)
            if event is None or event.is_processed:
                return SKIPPED
            articles = MappingRepository(session).articles_for_event(event_id)

            if not articles or len(articles) != event.article_count:
                logger.warning(
                    f"Aggregation: event {event_id} has {len(articles)} mapped articles "
                    f"but article_count={event.article_count}, skipped"
                )
                return SKIPPED

            if event.article_count == 1:
                article = articles[0]
                event.aggregated_summary = SINGLE_ARTICLE_PREFIX + (article.summarized_content or article.title)
                event.discrepancies = SINGLE_SOURCE_DISCREPANCY
                event.confidence_score = SINGLE_ARTICLE_CONFIDENCE
                event.is_processed = True
                event.updated_at = utcnow()
                return SINGLE

            payload = [
                ArticleForAggregation(
                    source=a.source,
                    title=a.title,
                    content=a.content,
                    published_at=a.published_at.isoformat() if a.published_at else None,
                    url=a.url or "",
                ).to_prompt()
                for a in articles
            ]

        if self._calls_made and self.settings.aggregation_delay_seconds > 0:
            await asyncio.sleep(self.settings.aggregation_delay_seconds)
        self._calls_made += 1

        result = await self.gateway.invoke(EVENT_AGGREGATION, {"articles": payload}, subject_id=event_id)
        if not result.ok:
            logger.error(f"Aggregation: event {event_id} left unprocessed: {result.failure.message}")
            return ERROR

        aggregated: AggregationResultLLM = result.value
        with self.db.get_session() as session:
            event = EventRepository(session).find_by_id(event_id)
            if event is None or event.is_processed:
                logger.warning(f"Aggregation: event {event_id} changed during the call, result discarded")
                return SKIPPED
            event.aggregated_summary = aggregated.aggregated_summary.strip()
            event.discrepancies = aggregated.discrepancies.strip()
            event.confidence_score = aggregated.confidence_score
            event.is_processed = True
            event.updated_at = utcnow()
        logger.debug(f"Aggregation: event {event_id} done ({aggregated.methodology[:100]})")
        return PROCESSED

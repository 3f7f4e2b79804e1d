"""
NewsPipeline - the entry points exposed to the API, CLI and scheduler.

Wires the four engines to one database and one prompt gateway, and serves
the read-side statistics and event views.

Stages are meant to run one at a time (the external scheduler serializes
them); nothing here locks against overlapping runs of the same stage.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..config import Settings, get_settings
from ..database import Database, get_database, utcnow
from ..schemas.base import StageStatus
from ..schemas.events import EventFilter, EventView, PipelineStats, StageResult
from ..schemas.news import ArticleIn
from ..tools.key_pool import KeyRotationPool
from ..tools.llm_service import LLMService, TextGenerator
from ..tools.prompt_gateway import PromptGateway
from ..tools.usage_monitor import UsageMonitor
from .aggregation import AggregationEngine
from .errors import StageError
from .mapping import EventMappingEngine
from .merging import EventMergingEngine
from .repository import ArticleRepository, EventRepository, MappingRepository
from .summarization import SummarizationEngine

logger = logging.getLogger(__name__)


class NewsPipeline:

    def __init__(self, db: Database, gateway: PromptGateway, settings: Optional[Settings] = None):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.summarizer = SummarizationEngine(db, gateway, self.settings)
        self.mapper = EventMappingEngine(db, gateway, self.settings)
        self.aggregator = AggregationEngine(db, gateway, self.settings)
        self.merger = EventMergingEngine(db, gateway, self.settings)

    @property
    def pool(self) -> KeyRotationPool:
        return self.gateway.pool

    # ── Stages ────────────────────────────────────────────────────────

    async def run_summarization(self, limit: Optional[int] = None) -> StageResult:
        return await self.summarizer.run(limit=limit)

    async def run_event_mapping(self) -> StageResult:
        return await self.mapper.run()

    async def run_aggregation(self) -> StageResult:
        return await self.aggregator.run()

    async def run_merge(self, window_hours: Optional[int] = None) -> StageResult:
        return await self.merger.run(window_hours)

    async def process_all(self) -> Dict[str, StageResult]:
        """Summarize → map → aggregate. A failed mapping run does not stop aggregation
        of events mapped earlier; the failure is reported in its stage result."""
        results: Dict[str, StageResult] = {}
        results["summarization"] = await self.run_summarization()
        try:
            results["event_mapping"] = await self.run_event_mapping()
        except StageError as e:
            results["event_mapping"] = StageResult(
                stage=e.stage, status=StageStatus.FAILED, message=f"Event mapping failed - {e.message}",
            )
        results["aggregation"] = await self.run_aggregation()
        logger.info("Process-all: " + " | ".join(r.message for r in results.values()))
        return results

    def ingest(self, articles: Iterable[ArticleIn]) -> Dict[str, int]:
        """Store articles from the scraping collaborator, skipping URLs already present."""
        saved = duplicates = 0
        seen = set()
        with self.db.get_session() as session:
            repo = ArticleRepository(session)
            for article in articles:
                if article.url in seen or repo.find_by_url(article.url) is not None:
                    duplicates += 1
                    continue
                repo.save(article)
                seen.add(article.url)
                saved += 1
        logger.info(f"Ingest: {saved} saved, {duplicates} duplicates skipped")
        return {"saved": saved, "duplicates": duplicates}

    # ── Statistics ────────────────────────────────────────────────────

    def get_pipeline_stats(self) -> PipelineStats:
        with self.db.get_session() as session:
            articles = ArticleRepository(session)
            events = EventRepository(session)
            total_articles = articles.count()
            mapped = MappingRepository(session).count()
            total_events = events.count()
            processed = events.count(is_processed=True)
            averages = events.averages()
            return PipelineStats(
                total_articles=total_articles,
                summarized=articles.count_summarized(),
                mapped=mapped,
                unmapped=max(0, total_articles - mapped),
                total_events=total_events,
                processed=processed,
                unprocessed=total_events - processed,
                avg_confidence=averages["confidence"],
                avg_article_count=averages["article_count"],
            )

    def aggregation_stats(self) -> Dict[str, Any]:
        with self.db.get_session() as session:
            events = EventRepository(session)
            total = events.count()
            processed = events.count(is_processed=True)
            recent = events.count(since=utcnow() - timedelta(hours=24))
        return {
            "total_events": total,
            "processed_events": processed,
            "unprocessed_events": total - processed,
            "processing_percentage": round(processed * 100.0 / total, 1) if total else 0.0,
            "recent_events_24h": recent,
        }

    def merge_stats(self) -> Dict[str, Any]:
        now = utcnow()
        with self.db.get_session() as session:
            events = EventRepository(session)
            last_day = len(events.find_recent_unprocessed(now - timedelta(hours=24)))
            last_week = len(events.find_recent_unprocessed(now - timedelta(days=7)))
            window = len(events.find_recent_unprocessed(now - timedelta(hours=self.settings.merge_window_hours)))
        return {
            "unprocessed_events_24h": last_day,
            "unprocessed_events_7d": last_week,
            "merge_window_hours": self.settings.merge_window_hours,
            "merge_candidates": window,
            "merge_recommended": window >= 2,
        }

    def summarization_stats(self) -> Dict[str, Any]:
        with self.db.get_session() as session:
            articles = ArticleRepository(session)
            total = articles.count()
            summarized = articles.count_summarized()
        return {
            "total_articles": total,
            "summarized_articles": summarized,
            "pending_articles": total - summarized,
            "summarized_percentage": round(summarized * 100.0 / total, 1) if total else 0.0,
        }

    # ── Read side ─────────────────────────────────────────────────────

    def list_events(self, filters: Optional[EventFilter] = None, with_articles: bool = False) -> List[EventView]:
        with self.db.get_session() as session:
            mappings = MappingRepository(session)
            return [
                EventView.from_row(e, mappings.references_for_event(e.id) if with_articles else None)
                for e in EventRepository(session).list(filters)
            ]

    def recent_events(self, hours: int = 24, limit: int = 20) -> List[EventView]:
        with self.db.get_session() as session:
            rows = EventRepository(session).recent(utcnow() - timedelta(hours=hours), limit=limit)
            return [EventView.from_row(e) for e in rows]

    def get_event(self, event_id: int) -> Optional[EventView]:
        with self.db.get_session() as session:
            event = EventRepository(session).find_by_id(event_id)
            if event is None:
                return None
            return EventView.from_row(event, MappingRepository(session).references_for_event(event_id))


def build_pipeline(
    db: Optional[Database] = None,
    settings: Optional[Settings] = None,
    generator: Optional[TextGenerator] = None,
) -> NewsPipeline:
    """Wire database, key pool, generator and gateway into a pipeline."""
    settings = settings or get_settings()
    db = db or get_database()
    pool = KeyRotationPool(db, settings.get_key_names())
    gateway = PromptGateway(db, pool, generator or LLMService(settings), settings)
    return NewsPipeline(db, gateway, settings)


def build_monitor(pipeline: NewsPipeline) -> UsageMonitor:
    return UsageMonitor(pipeline.db, pipeline.pool)

"""
Event mapping - cluster unmapped, summarized articles into events.

One clustering call covers the whole candidate batch. The model's answer is
not trusted: unknown and already-claimed ids are dropped, and every candidate
the model left out gets its own singleton event, so after a successful run
each candidate has exactly one mapping.

The run is all-or-nothing: candidates are snapshotted, the call is made with
no open transaction, and every event and mapping is written in one session.
If the call fails nothing is written and StageError is raised.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import ArticleEventMappingModel, Database, EventModel, utcnow
from ..schemas.base import (
    INDIVIDUAL_EVENT_CONFIDENCE,
    INDIVIDUAL_EVENT_PREFIX,
    UNCATEGORIZED_EVENT_TYPE,
    MappingMethod,
    StageStatus,
)
from ..schemas.events import ArticleForClustering, StageResult
from ..schemas.llm_outputs import ArticleClusterLLM
from ..tools.prompt_gateway import PromptGateway
from ..tools.prompts import EVENT_CLUSTERING
from .errors import StageError
from .repository import ArticleRepository, EventRepository, MappingRepository

logger = logging.getLogger(__name__)

STAGE = "event_mapping"

# Snapshot of a candidate taken before the call: (title, published_at)
_Candidate = Tuple[str, Optional[datetime]]


class EventMappingEngine:

    def __init__(self, db: Database, gateway: PromptGateway, settings: Optional[Settings] = None):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def run(self) -> StageResult:
        with self.db.get_session() as session:
            articles = ArticleRepository(session).find_summarized_unmapped()
            candidates: Dict[int, _Candidate] = {a.id: (a.title, a.published_at) for a in articles}
            payload = [
                ArticleForClustering(
                    id=a.id,
                    title=a.title,
                    summary=a.summarized_content,
                    published_at=a.published_at.isoformat() if a.published_at else None,
                    source=a.source,
                ).to_prompt()
                for a in articles
            ]

        if not candidates:
            logger.info("Event mapping: no unmapped summarized articles, nothing to do")
            return StageResult(
                stage=STAGE,
                status=StageStatus.NOTHING_TO_DO,
                message="No unmapped summarized articles - nothing to do",
                counters={"candidates": 0},
            )

        logger.info(f"Event mapping: clustering {len(candidates)} articles")
        result = await self.gateway.invoke(EVENT_CLUSTERING, {"articles": payload}, subject_id=len(candidates))
        if not result.ok:
            logger.error(f"Event mapping failed, nothing committed: {result.failure.message}")
            raise StageError(STAGE, f"clustering call failed ({result.failure.kind.value}): {result.failure.message}")

        with self.db.get_session() as session:
            counters = self._apply(session, candidates, result.value)

        message = (
            f"Event mapping completed - {counters['events_created']} events created "
            f"({counters['clustered_events']} clustered, {counters['individual_events']} individual), "
            f"{counters['articles_mapped']} articles mapped"
        )
        logger.info(message)
        return StageResult(stage=STAGE, status=StageStatus.COMPLETED, message=message, counters=counters)

    def _apply(
        self,
        session: Session,
        candidates: Dict[int, _Candidate],
        clusters: List[ArticleClusterLLM],
    ) -> Dict[str, int]:
        events = EventRepository(session)
        mappings = MappingRepository(session)
        assigned: Set[int] = set()
        counters = {
            "candidates": len(candidates),
            "clusters_returned": len(clusters),
            "clustered_events": 0,
            "individual_events": 0,
            "events_created": 0,
            "articles_mapped": 0,
            "unknown_ids": 0,
            "duplicate_ids": 0,
            "skipped_clusters": 0,
        }

        for cluster in clusters:
            if cluster.invalid_ids:
                logger.warning(f"Event mapping: cluster '{cluster.event_title}' has non-numeric ids {cluster.invalid_ids}, dropped")
                counters["unknown_ids"] += len(cluster.invalid_ids)
            member_ids: List[int] = []
            for article_id in cluster.article_ids:
                if article_id not in candidates:
                    logger.warning(f"Event mapping: cluster '{cluster.event_title}' references unknown article {article_id}, dropped")
                    counters["unknown_ids"] += 1
                elif article_id in assigned or article_id in member_ids:
                    logger.warning(f"Event mapping: article {article_id} already assigned, dropped from '{cluster.event_title}'")
                    counters["duplicate_ids"] += 1
                elif mappings.exists_by_article(article_id):
                    logger.warning(f"Event mapping: article {article_id} was mapped concurrently, dropped")
                    counters["duplicate_ids"] += 1
                else:
                    member_ids.append(article_id)

            if not member_ids:
                counters["skipped_clusters"] += 1
                continue

            event = events.save(EventModel(
                title=cluster.event_title.strip()[:500],
                event_type=(cluster.event_type or "").strip() or UNCATEGORIZED_EVENT_TYPE,
                event_date=_earliest([candidates[i][1] for i in member_ids]),
                confidence_score=cluster.confidence_score,
                is_processed=False,
                article_count=0,
            ))
            for article_id in member_ids:
                mappings.save(ArticleEventMappingModel(
                    article_id=article_id,
                    event_id=event.id,
                    confidence_score=cluster.confidence_score,
                    mapping_method=MappingMethod.AI_CLUSTERING.value,
                ))
            event.article_count = len(member_ids)
            assigned.update(member_ids)
            counters["clustered_events"] += 1
            counters["articles_mapped"] += len(member_ids)

        # Every candidate the model left out still ends up in exactly one event
        for article_id, (title, published_at) in candidates.items():
            if article_id in assigned or mappings.exists_by_article(article_id):
                continue
            event = events.save(EventModel(
                title=f"{INDIVIDUAL_EVENT_PREFIX}{title[:50]}",
                event_type=UNCATEGORIZED_EVENT_TYPE,
                event_date=published_at or utcnow(),
                confidence_score=INDIVIDUAL_EVENT_CONFIDENCE,
                is_processed=False,
                article_count=1,
            ))
            mappings.save(ArticleEventMappingModel(
                article_id=article_id,
                event_id=event.id,
                confidence_score=INDIVIDUAL_EVENT_CONFIDENCE,
                mapping_method=MappingMethod.AI_INDIVIDUAL.value,
            ))
            assigned.add(article_id)
            counters["individual_events"] += 1
            counters["articles_mapped"] += 1

        counters["events_created"] = counters["clustered_events"] + counters["individual_events"]
        session.flush()
        return counters


def _earliest(timestamps: List[Optional[datetime]]) -> datetime:
    known = [t for t in timestamps if t is not None]
    return min(known) if known else utcnow()

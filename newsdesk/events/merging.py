"""
Event merging - consolidate duplicate events created in separate runs.

Candidates are the unprocessed events created inside the look-back window.
One analysis call proposes merge groups. Groups under the confidence floor or
with fewer than two distinct ids are dropped; a group is also skipped if any
id is unknown, outside the window, or already consumed by an earlier group.

Each accepted group runs in its own transaction: mappings move from the
losing events to the primary (first id), the losers are deleted, and the
primary gets the merged title/type, live article count and the
article-count-weighted confidence.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import Database, EventModel, utcnow
from ..schemas.base import MappingMethod, StageStatus
from ..schemas.events import EventForMerge, StageResult
from ..schemas.llm_outputs import MergeCandidateLLM
from ..tools.prompt_gateway import PromptGateway
from ..tools.prompts import EVENT_MERGING
from .errors import StageError
from .repository import EventRepository, MappingRepository

logger = logging.getLogger(__name__)

STAGE = "event_merging"


def weighted_confidence(events: List[EventModel]) -> float:
    """Article-count-weighted mean confidence; plain mean if every count is zero."""
    total = sum(e.article_count or 0 for e in events)
    if total == 0:
        return sum(e.confidence_score or 0.0 for e in events) / len(events) if events else 0.0
    return sum((e.confidence_score or 0.0) * (e.article_count or 0) for e in events) / total


class EventMergingEngine:

    def __init__(self, db: Database, gateway: PromptGateway, settings: Optional[Settings] = None):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def run(self, window_hours: Optional[int] = None) -> StageResult:
        hours = self.settings.merge_window_hours if window_hours is None else window_hours
        since = utcnow() - timedelta(hours=hours)

        with self.db.get_session() as session:
            candidates = EventRepository(session).find_recent_unprocessed(since)
            window_ids = {e.id for e in candidates}
            payload = [
                EventForMerge(
                    id=e.id,
                    title=e.title,
                    event_type=e.event_type or "",
                    article_count=e.article_count or 0,
                    confidence_score=e.confidence_score or 0.0,
                    event_date=e.event_date.strftime("%Y-%m-%d %H:%M") if e.event_date else "",
                ).to_prompt()
                for e in candidates
            ]

        if len(window_ids) < 2:
            logger.info(f"Event merging: {len(window_ids)} candidate(s) in the last {hours}h, nothing to do")
            return StageResult(
                stage=STAGE,
                status=StageStatus.NOTHING_TO_DO,
                message=f"Fewer than 2 unprocessed events in the last {hours} hours - nothing to merge",
                counters={"candidates": len(window_ids)},
            )

        logger.info(f"Event merging: analysing {len(window_ids)} events from the last {hours}h")
        result = await self.gateway.invoke(EVENT_MERGING, {"events": payload}, subject_id=len(window_ids))
        if not result.ok:
            logger.error(f"Event merging analysis failed: {result.failure.message}")
            raise StageError(STAGE, f"merge analysis call failed ({result.failure.kind.value}): {result.failure.message}")

        groups: List[MergeCandidateLLM] = result.value
        counters = {
            "candidates": len(window_ids),
            "groups_proposed": len(groups),
            "groups_merged": 0,
            "events_removed": 0,
            "low_confidence": 0,
            "skipped": 0,
            "errors": 0,
        }
        consumed: Set[int] = set()
        merged_into: Dict[int, List[int]] = {}

        for group in groups:
            ids = list(dict.fromkeys(group.event_ids))
            if group.confidence_score < self.settings.merge_min_confidence:
                logger.warning(
                    f"Event merging: group {ids} below confidence floor "
                    f"({group.confidence_score:.2f} < {self.settings.merge_min_confidence}), discarded"
                )
                counters["low_confidence"] += 1
                continue
            if group.invalid_ids:
                logger.warning(f"Event merging: group {ids} has non-numeric ids {group.invalid_ids}, skipped")
                counters["skipped"] += 1
                continue
            if len(ids) < 2:
                counters["skipped"] += 1
                continue
            outside = [i for i in ids if i not in window_ids or i in consumed]
            if outside:
                logger.warning(f"Event merging: group {ids} references unavailable events {outside}, skipped")
                counters["skipped"] += 1
                continue

            try:
                with self.db.get_session() as session:
                    applied = self._apply_group(session, ids, group)
            except SQLAlchemyError as e:
                logger.error(f"Event merging: group {ids} rolled back: {e}")
                counters["errors"] += 1
                continue

            if not applied:
                counters["skipped"] += 1
                continue
            consumed.update(ids)
            merged_into[ids[0]] = ids[1:]
            counters["groups_merged"] += 1
            counters["events_removed"] += len(ids) - 1

        message = (
            f"Event merging completed - {counters['groups_merged']} groups merged, "
            f"{counters['events_removed']} events removed, "
            f"{counters['low_confidence'] + counters['skipped']} groups discarded"
        )
        logger.info(message)
        return StageResult(
            stage=STAGE,
            status=StageStatus.COMPLETED if not counters["errors"] else StageStatus.PARTIAL,
            message=message,
            counters=counters,
            details={"merged": {str(k): v for k, v in merged_into.items()}},
        )

    def _apply_group(self, session: Session, ids: List[int], group: MergeCandidateLLM) -> bool:
        events_repo = EventRepository(session)
        mappings = MappingRepository(session)

        found = events_repo.find_by_ids(ids)
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning(f"Event merging: events {missing} no longer exist, group {ids} skipped")
            return False
        if any(found[i].is_processed for i in ids):
            logger.warning(f"Event merging: group {ids} contains processed events, skipped")
            return False

        members = [found[i] for i in ids]
        primary, losers = members[0], members[1:]
        expected_count = sum(e.article_count or 0 for e in members)
        confidence = weighted_confidence(members)
        dates = [e.event_date for e in members if e.event_date is not None]

        for loser in losers:
            for mapping in mappings.find_by_event(loser.id):
                mapping.event_id = primary.id
                mapping.mapping_method = MappingMethod.AI_MERGING.value
            session.flush()
            events_repo.delete(loser)

        live_count = mappings.count_by_event(primary.id)
        if live_count != expected_count:
            logger.warning(
                f"Event merging: primary {primary.id} has {live_count} mappings, "
                f"stored counts summed to {expected_count}; using live count"
            )

        primary.title = group.merged_title.strip()[:500]
        primary.event_type = (group.merged_event_type or "").strip() or primary.event_type
        primary.article_count = live_count
        primary.confidence_score = round(confidence, 4)
        if dates:
            primary.event_date = min(dates)
        primary.updated_at = utcnow()
        logger.info(
            f"Event merging: merged {[e.id for e in losers]} into {primary.id} "
            f"({live_count} articles, confidence {primary.confidence_score:.3f}): {group.reasoning[:120]}"
        )
        return True

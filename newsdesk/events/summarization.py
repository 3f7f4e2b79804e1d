"""
Summarization - fill summarized_content for articles that have none.

Articles are sent in small batches, one SUMMARIZE call per batch, with a
cooperative delay between batches. The batch answer is checked per article:

  - ids that were not in the batch are ignored
  - a changed title means the model mixed articles up: rejected
  - an empty or very short summary: rejected
  - ids the model skipped get the fixed apology placeholder

Only accepted summaries are stored. Rejected and placeholder articles stay
unsummarized, so the next run picks them up again.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..config import Settings, get_settings
from ..database import Database
from ..schemas.base import MIN_SUMMARY_LENGTH, SUMMARY_PLACEHOLDER, StageStatus
from ..schemas.events import ArticleForSummary, StageResult
from ..schemas.llm_outputs import ArticleSummaryLLM
from ..tools.prompt_gateway import PromptGateway
from ..tools.prompts import SUMMARIZE_BATCH
from .repository import ArticleRepository

logger = logging.getLogger(__name__)

STAGE = "summarization"

# Cap on article text sent per item, keeps a batch within the summarize token budget
MAX_CONTENT_CHARS = 6000


@dataclass
class BatchOutcome:
    accepted: Dict[int, str] = field(default_factory=dict)
    rejected: Dict[int, str] = field(default_factory=dict)      # id -> reason
    placeholders: Dict[int, str] = field(default_factory=dict)  # id -> apology text
    unknown_ids: List[int] = field(default_factory=list)


def reconcile_summaries(batch: List[Tuple[int, str]], results: List[ArticleSummaryLLM]) -> BatchOutcome:
    """Check a batch answer against the (id, title) pairs that were sent."""
    titles = dict(batch)
    outcome = BatchOutcome()
    for item in results:
        if item.id not in titles:
            outcome.unknown_ids.append(item.id)
            continue
        if item.id in outcome.accepted or item.id in outcome.rejected:
            continue
        if item.title and item.title.strip() != titles[item.id].strip():
            outcome.rejected[item.id] = "title changed"
            continue
        summary = (item.summarized_content or "").strip()
        if len(summary) < MIN_SUMMARY_LENGTH:
            outcome.rejected[item.id] = "summary empty or too short"
            continue
        outcome.accepted[item.id] = summary

    for article_id, _ in batch:
        if article_id not in outcome.accepted and article_id not in outcome.rejected:
            outcome.placeholders[article_id] = SUMMARY_PLACEHOLDER
    return outcome


class SummarizationEngine:

    def __init__(self, db: Database, gateway: PromptGateway, settings: Optional[Settings] = None):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def run(self, limit: Optional[int] = None) -> StageResult:
        with self.db.get_session() as session:
            pending = [
                (a.id, a.title, a.content)
                for a in ArticleRepository(session).find_unsummarized(limit=limit)
            ]

        if not pending:
            logger.info("Summarization: every article already has a summary")
            return StageResult(
                stage=STAGE,
                status=StageStatus.NOTHING_TO_DO,
                message="No articles waiting for a summary - nothing to do",
                counters={"candidates": 0},
            )

        size = max(1, self.settings.summarization_batch_size)
        batches = [pending[i:i + size] for i in range(0, len(pending), size)]
        logger.info(f"Summarization: {len(pending)} articles in {len(batches)} batches")

        counters = {
            "candidates": len(pending),
            "batches": len(batches),
            "failed_batches": 0,
            "summarized": 0,
            "rejected": 0,
            "placeholders": 0,
            "unknown_ids": 0,
        }
        placeholders: Dict[int, str] = {}
        rejected: Dict[int, str] = {}

        for index, batch in enumerate(batches):
            if index and self.settings.summarization_delay_seconds > 0:
                await asyncio.sleep(self.settings.summarization_delay_seconds)

            payload = [
                ArticleForSummary(id=aid, title=title, content=(content or "")[:MAX_CONTENT_CHARS]).to_prompt()
                for aid, title, content in batch
            ]
            result = await self.gateway.invoke(SUMMARIZE_BATCH, {"articles": payload}, subject_id=len(batch))
            if not result.ok:
                logger.error(f"Summarization: batch {index + 1}/{len(batches)} failed: {result.failure.message}")
                counters["failed_batches"] += 1
                continue

            outcome = reconcile_summaries([(aid, title) for aid, title, _ in batch], result.value)
            if outcome.unknown_ids:
                logger.warning(f"Summarization: ignored unknown ids {outcome.unknown_ids}")
            for aid, reason in outcome.rejected.items():
                logger.warning(f"Summarization: article {aid} rejected ({reason})")
            if outcome.placeholders:
                logger.warning(f"Summarization: no summary returned for {sorted(outcome.placeholders)}")

            with self.db.get_session() as session:
                articles = ArticleRepository(session).find_by_ids(outcome.accepted.keys())
                for aid, summary in outcome.accepted.items():
                    article = articles.get(aid)
                    if article is not None and not article.summarized_content:
                        article.summarized_content = summary
                        counters["summarized"] += 1

            counters["rejected"] += len(outcome.rejected)
            counters["placeholders"] += len(outcome.placeholders)
            counters["unknown_ids"] += len(outcome.unknown_ids)
            placeholders.update(outcome.placeholders)
            rejected.update(outcome.rejected)

        message = (
            f"Summarization completed - summarized: {counters['summarized']}, "
            f"rejected: {counters['rejected']}, missing: {counters['placeholders']}, "
            f"failed batches: {counters['failed_batches']}"
        )
        logger.info(message)
        if counters["failed_batches"] == len(batches):
            status = StageStatus.FAILED
        elif counters["failed_batches"] or counters["rejected"] or counters["placeholders"]:
            status = StageStatus.PARTIAL
        else:
            status = StageStatus.COMPLETED
        return StageResult(
            stage=STAGE,
            status=status,
            message=message,
            counters=counters,
            details={
                "placeholders": {str(k): v for k, v in placeholders.items()},
                "rejected": {str(k): v for k, v in rejected.items()},
            },
        )

import pytest

from conftest import add_article, ledger_rows

from newsdesk.database import ArticleModel
from newsdesk.events.summarization import reconcile_summaries
from newsdesk.schemas.base import SUMMARY_PLACEHOLDER, StageStatus
from newsdesk.schemas.llm_outputs import ArticleSummaryLLM


def _item(article_id, title, summary):
    return ArticleSummaryLLM(id=article_id, title=title, summarizedContent=summary)


def _summaries(db):
    with db.get_session() as session:
        return {a.id: a.summarized_content for a in session.query(ArticleModel).all()}


def test_reconcile_checks_each_article():
    batch = [(1, "Bridge opens"), (2, "Budget passed"), (3, "Match won"), (4, "Fire in market")]
    outcome = reconcile_summaries(batch, [
        _item(1, "Bridge opens", "The new bridge opened to traffic on Monday."),
        _item(2, "Budget approved", "Parliament approved the national budget."),
        _item(3, "Match won", "Short"),
        _item(99, "Unrelated", "A summary for an article that was never sent."),
    ])
    assert outcome.accepted == {1: "The new bridge opened to traffic on Monday."}
    assert outcome.rejected == {2: "title changed", 3: "summary empty or too short"}
    assert outcome.placeholders == {4: SUMMARY_PLACEHOLDER}
    assert outcome.unknown_ids == [99]


def test_reconcile_accepts_missing_title_echo():
    outcome = reconcile_summaries([(1, "Bridge opens")], [_item(1, "", "The new bridge opened on Monday.")])
    assert 1 in outcome.accepted


@pytest.mark.asyncio
async def test_batches_are_summarized_and_failures_isolated(pipeline, generator, db, settings):
    ids = [add_article(db, title=f"Story {i}", summary=None) for i in range(7)]
    first_batch = ids[:settings.summarization_batch_size]
    generator.queue(
        [{"id": i, "title": f"Story {n}", "summarizedContent": f"Summary number {n} of the story."}
         for n, i in enumerate(first_batch)],
        ConnectionError("network down"),
    )

    result = await pipeline.run_summarization()

    assert generator.calls == 2
    assert result.counters["batches"] == 2
    assert result.counters["failed_batches"] == 1
    assert result.counters["summarized"] == 5
    assert result.status == StageStatus.PARTIAL
    summaries = _summaries(db)
    assert all(summaries[i] for i in first_batch)
    assert all(summaries[i] is None for i in ids[5:])
    assert len(ledger_rows(db)) == 2


@pytest.mark.asyncio
async def test_placeholder_is_reported_not_stored(pipeline, generator, db):
    a = add_article(db, title="Bridge opens", summary=None)
    b = add_article(db, title="Budget passed", summary=None)
    generator.queue([{"id": a, "title": "Bridge opens", "summarizedContent": "The new bridge opened on Monday."}])

    result = await pipeline.run_summarization()

    assert result.counters["placeholders"] == 1
    assert result.details["placeholders"] == {str(b): SUMMARY_PLACEHOLDER}
    assert _summaries(db)[b] is None

    # still a candidate next time
    generator.queue([{"id": b, "title": "Budget passed", "summarizedContent": "Parliament passed the budget."}])
    again = await pipeline.run_summarization()
    assert again.counters["candidates"] == 1
    assert again.status == StageStatus.COMPLETED


@pytest.mark.asyncio
async def test_nothing_to_summarize(pipeline, generator, db):
    add_article(db, title="Done already")
    result = await pipeline.run_summarization()
    assert result.status == StageStatus.NOTHING_TO_DO
    assert generator.calls == 0

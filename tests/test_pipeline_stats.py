import pytest

from conftest import add_article, add_event

from newsdesk.schemas.base import StageStatus
from newsdesk.schemas.events import EventFilter
from newsdesk.schemas.news import ArticleIn


def test_stats_on_empty_store(pipeline):
    stats = pipeline.get_pipeline_stats()
    assert stats.total_articles == 0
    assert stats.avg_confidence == 0.0
    assert set(stats.model_dump(by_alias=True)) >= {
        "totalArticles", "mapped", "unmapped", "totalEvents", "processed", "avgConfidence", "avgArticleCount",
    }


def test_stats_counts(pipeline, db):
    a, b, c = (add_article(db, title=t) for t in ("A", "B", "C"))
    add_article(db, title="Pending", summary=None)
    add_event(db, [a, b], confidence=0.9, is_processed=True)
    add_event(db, [c], confidence=0.5)

    stats = pipeline.get_pipeline_stats()
    assert stats.total_articles == 4
    assert stats.summarized == 3
    assert stats.mapped == 3
    assert stats.unmapped == 1
    assert stats.total_events == 2
    assert stats.processed == 1
    assert stats.avg_confidence == pytest.approx(0.7)
    assert stats.avg_article_count == pytest.approx(1.5)

    assert pipeline.aggregation_stats()["processing_percentage"] == 50.0
    assert pipeline.merge_stats()["merge_recommended"] is False
    assert pipeline.summarization_stats()["pending_articles"] == 1


def test_ingest_skips_duplicate_urls(pipeline):
    article = ArticleIn(url="https://news.example/a", title="A", content="Body", source="Daily Star")
    first = pipeline.ingest([article, article])
    second = pipeline.ingest([article])
    assert first == {"saved": 1, "duplicates": 1}
    assert second == {"saved": 0, "duplicates": 1}


def test_list_events_filters(pipeline, db):
    a, b, c = (add_article(db, title=t) for t in ("A", "B", "C"))
    add_event(db, [a, b], confidence=0.9, event_type="sports")
    add_event(db, [c], confidence=0.4, event_type="politics")

    assert [e.event_type for e in pipeline.list_events(EventFilter(min_article_count=2))] == ["sports"]
    assert [e.event_type for e in pipeline.list_events(EventFilter(min_confidence=0.5))] == ["sports"]
    assert [e.event_type for e in pipeline.list_events(EventFilter(event_type="Politics"))] == ["politics"]
    assert pipeline.list_events(EventFilter(is_processed=True)) == []
    with_articles = pipeline.list_events(EventFilter(event_type="sports"), with_articles=True)
    assert len(with_articles[0].articles) == 2


@pytest.mark.asyncio
async def test_process_all_runs_three_stages(pipeline, generator, db):
    a = add_article(db, title="Bridge opens", summary=None)
    b = add_article(db, title="New bridge inaugurated", summary=None)
    generator.queue(
        [
            {"id": a, "title": "Bridge opens", "summarizedContent": "The bridge opened on Monday morning."},
            {"id": b, "title": "New bridge inaugurated", "summarizedContent": "Officials inaugurated the bridge."},
        ],
        [{"eventTitle": "Bridge opening", "eventType": "infrastructure", "confidenceScore": 0.9, "articleIds": [a, b]}],
        {"aggregatedSummary": "The bridge opened.", "discrepancies": "No significant factual discrepancies found",
         "confidenceScore": 0.95},
    )

    results = await pipeline.process_all()

    assert [r.status for r in results.values()] == [StageStatus.COMPLETED] * 3
    stats = pipeline.get_pipeline_stats()
    assert stats.mapped == 2 and stats.processed == 1


@pytest.mark.asyncio
async def test_process_all_reports_failed_mapping_and_keeps_going(pipeline, generator, db):
    add_article(db, title="Mapped later")
    single = add_article(db, title="Mapped earlier")
    add_event(db, [single])
    generator.queue("not json")

    results = await pipeline.process_all()

    assert results["summarization"].status == StageStatus.NOTHING_TO_DO
    assert results["event_mapping"].status == StageStatus.FAILED
    assert results["aggregation"].counters["single_article"] == 1

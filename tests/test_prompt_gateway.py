import pytest

from conftest import ledger_rows, record_usage

from newsdesk.schemas.base import Operation
from newsdesk.schemas.llm_outputs import AggregationResultLLM, ArticleClusterLLM
from newsdesk.tools.prompt_gateway import FailureKind, ParseError
from newsdesk.tools.prompts import EVENT_AGGREGATION, EVENT_CLUSTERING, get_template

ARTICLES = [{"id": 1, "title": "Bridge opens", "summary": "s", "publishedAt": None, "source": "A"}]


@pytest.mark.asyncio
async def test_success_returns_validated_value_and_one_ledger_row(pipeline, generator, db, settings):
    generator.queue('```json\n[{"eventTitle": "Bridge opens", "eventType": "infrastructure", '
                    '"confidenceScore": 0.9, "articleIds": [1, "2"]}]\n```')
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES}, subject_id=1)

    assert result.ok
    assert isinstance(result.value[0], ArticleClusterLLM)
    assert result.value[0].article_ids == [1, 2]
    assert result.key_name == "K1"

    rows = ledger_rows(db)
    assert len(rows) == 1
    assert rows[0].success is True
    assert rows[0].operation == Operation.CLUSTER.value
    assert rows[0].key_name == "K1"
    assert rows[0].subject_id == 1
    assert rows[0].token_estimate == max(1, len(generator.prompts[0]) // settings.chars_per_token)


@pytest.mark.asyncio
async def test_transport_failure_is_typed_not_raised(pipeline, generator, db):
    generator.queue(TimeoutError("read timed out"))
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES})

    assert not result.ok
    assert result.failure.kind == FailureKind.TRANSIENT
    assert "timed out" in result.failure.message
    rows = ledger_rows(db)
    assert len(rows) == 1
    assert rows[0].success is False
    assert rows[0].error_message.startswith("TRANSIENT")


@pytest.mark.asyncio
async def test_unparseable_text_is_a_parse_error_with_raw_text(pipeline, generator, db):
    generator.queue("I could not find any related articles.")
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES})

    assert isinstance(result.failure, ParseError)
    assert result.failure.kind == FailureKind.MALFORMED
    assert result.failure.raw_text == "I could not find any related articles."
    assert [r.success for r in ledger_rows(db)] == [False]


@pytest.mark.asyncio
async def test_missing_required_field_is_malformed(pipeline, generator):
    generator.queue({"aggregatedSummary": "Combined story", "confidenceScore": 0.8})
    result = await pipeline.gateway.invoke(EVENT_AGGREGATION, {"articles": []}, subject_id=7)
    assert result.failure.kind == FailureKind.MALFORMED


@pytest.mark.asyncio
async def test_aggregation_result_and_score_clamping(pipeline, generator):
    generator.queue({
        "aggregatedSummary": "Combined story",
        "discrepancies": "Death toll differs - A: 2, B: 1",
        "confidenceScore": 1.7,
    })
    result = await pipeline.gateway.invoke(EVENT_AGGREGATION, {"articles": []}, subject_id=7)
    assert isinstance(result.value, AggregationResultLLM)
    assert result.value.confidence_score == 1.0
    assert result.value.methodology == ""


@pytest.mark.asyncio
async def test_wrapped_list_is_unwrapped(pipeline, generator):
    generator.queue({"clusters": [{"eventTitle": "Bridge opens", "articleIds": [1]}]})
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES})
    assert result.ok and result.value[0].event_title == "Bridge opens"


@pytest.mark.asyncio
async def test_uses_next_key_when_first_is_exhausted(pipeline, generator, db):
    record_usage(db, "K1", Operation.CLUSTER, count=500)
    generator.queue([])
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES})
    assert result.ok and result.value == []
    assert generator.keys == ["K2"]


def test_template_render_serializes_variables():
    prompt = get_template(EVENT_CLUSTERING).render({"articles": ARTICLES})
    assert '"title": "Bridge opens"' in prompt
    assert '"articleIds": [1, 2, 3]' in prompt


def test_aggregation_template_names_the_no_discrepancy_sentence():
    prompt = get_template(EVENT_AGGREGATION).render({"articles": []})
    assert "No significant factual discrepancies found" in prompt


@pytest.mark.asyncio
async def test_skips_json_in_prose_that_does_not_fit_the_schema(pipeline, generator, db):
    generator.queue('Grouped story [1] as follows:\n[{"eventTitle": "Bridge opens", "articleIds": [1]}]')
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES})
    assert result.ok
    assert result.value[0].article_ids == [1]
    assert [r.success for r in ledger_rows(db)] == [True]


@pytest.mark.asyncio
async def test_fenced_answer_after_prose(pipeline, generator):
    generator.queue('Found 1 group [1] below:\n```json\n[{"eventTitle": "Bridge opens", "articleIds": [1]}]\n```')
    result = await pipeline.gateway.invoke(EVENT_CLUSTERING, {"articles": ARTICLES})
    assert result.ok and result.value[0].event_title == "Bridge opens"

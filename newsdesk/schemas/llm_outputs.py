"""
Pydantic models for LLM structured output.

These define ONLY what the model produces for each prompt. Field aliases match
the camelCase keys requested in the prompt templates; validators coerce the
usual model sloppiness (scores out of range, ids as strings, null strings).

Convention: Suffix with "LLM" to distinguish from persisted/read-side schemas.
"""

from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.functional_validators import BeforeValidator


def _clamp_score(v):
    if v is None or v == "":
        return 0.0
    try:
        score = float(v)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, score))


def _none_to_str(v):
    return "" if v is None else str(v)


def _coerce_id(v) -> Optional[int]:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str) and v.strip().isdigit():
        return int(v.strip())
    return None


def _split_ids(data, alias: str, name: str):
    """Keep ids that convert to int under `alias`; move the rest to invalid_ids."""
    if not isinstance(data, dict):
        return data
    key = alias if alias in data else name
    raw = data.get(key)
    if raw is None:
        raw = []
    elif not isinstance(raw, list):
        raw = [raw]
    ids, invalid = [], []
    for v in raw:
        coerced = _coerce_id(v)
        if coerced is None:
            invalid.append(str(v))
        else:
            ids.append(coerced)
    return {**data, key: ids, "invalid_ids": invalid}


Score = Annotated[float, BeforeValidator(_clamp_score)]
Text = Annotated[str, BeforeValidator(_none_to_str)]


class _LLMModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ArticleClusterLLM(_LLMModel):
    """One cluster proposed by the event-mapping call."""
    event_title: str = Field(alias="eventTitle", min_length=1)
    event_type: Text = Field(alias="eventType", default="")
    confidence_score: Score = Field(alias="confidenceScore", default=0.5)
    article_ids: List[int] = Field(alias="articleIds", default_factory=list)
    invalid_ids: List[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _lenient_ids(cls, data):
        return _split_ids(data, "articleIds", "article_ids")


class AggregationResultLLM(_LLMModel):
    """Cross-source synthesis for one event."""
    aggregated_summary: str = Field(alias="aggregatedSummary", min_length=1)
    discrepancies: str = Field(min_length=1)
    confidence_score: Score = Field(alias="confidenceScore")
    methodology: Text = ""


class MergeCandidateLLM(_LLMModel):
    """One merge group proposed by the event-merging call."""
    event_ids: List[int] = Field(alias="eventIds", default_factory=list)
    merged_title: str = Field(alias="mergedTitle", min_length=1)
    merged_event_type: Text = Field(alias="mergedEventType", default="")
    confidence_score: Score = Field(alias="confidenceScore", default=0.0)
    reasoning: Text = ""
    invalid_ids: List[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _lenient_ids(cls, data):
        return _split_ids(data, "eventIds", "event_ids")


class ArticleSummaryLLM(_LLMModel):
    """Per-article result of the batch summarization call."""
    id: int
    title: Text = ""
    summarized_content: Optional[str] = Field(alias="summarizedContent", default=None)

    @field_validator("summarized_content", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

"""
Prompt templates for the four external text-generation operations.

Each template is registered under a template id together with the operation
it is billed to and the schema its JSON answer must satisfy. Templates use
str.format placeholders; literal braces in the JSON examples are doubled.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import TypeAdapter

from ..schemas.base import NO_DISCREPANCY_SENTINEL, Operation
from ..schemas.llm_outputs import (
    AggregationResultLLM,
    ArticleClusterLLM,
    ArticleSummaryLLM,
    MergeCandidateLLM,
)
from .json_repair import extract_list_from_response


SUMMARIZE_BATCH = "SUMMARIZE_BATCH"
EVENT_CLUSTERING = "EVENT_CLUSTERING"
EVENT_AGGREGATION = "EVENT_AGGREGATION"
EVENT_MERGING = "EVENT_MERGING"


SUMMARIZE_BATCH_PROMPT = """\
You are an experienced news editor. Summarize each article below in 3-5 neutral,
factual sentences. Keep names, numbers, dates and places exactly as written.

Rules:
- Return one entry per input article, using the same id.
- Copy each title back unchanged.
- Do not merge articles and do not add facts that are not in the text.

Input articles:
{articles}

Answer with this exact JSON array and nothing else:
[
  {{"id": 1, "title": "original title", "summarizedContent": "3-5 sentence summary"}}
]
"""

EVENT_CLUSTERING_PROMPT = """\
You are a news analyst. The articles below were published by different outlets.
Group together the articles that report the same real-world event (same incident,
same announcement, same match, same decision).

Rules:
- Each group should contain at least 2 articles about the same event.
- An article may belong to at most one group.
- Articles about different events must not share a group, even if the topic is similar.
- Leave out articles that have no partner; they are handled separately.
- confidenceScore is between 0.0 and 1.0 and reflects how sure you are the group is one event.

Input articles:
{articles}

Answer with this exact JSON array and nothing else:
[
  {{
    "eventTitle": "short neutral title of the event",
    "eventType": "politics | economy | sports | accident | crime | international | other",
    "confidenceScore": 0.9,
    "articleIds": [1, 2, 3]
  }}
]
"""

EVENT_AGGREGATION_PROMPT = """\
You are an expert news analyst. The articles below all cover the same event,
reported by different outlets. Produce a combined account and point out where
the sources disagree on facts.

Tasks:
1. aggregatedSummary: a complete, neutral, informative summary of the event
   using the facts from every article (10-15 sentences).
2. discrepancies: name each factual conflict with the sources and their values,
   for example "Death toll differs - Daily Star: 2, New Age: 1" or
   "Time differs - Source A: 10am, Source B: 11am".
   If the sources agree, write exactly "{no_discrepancy}".
3. confidenceScore: 0.0 to 1.0, where 1.0 means every source is consistent.
4. methodology: one sentence on how the sources were reconciled.

Include all important dates, numbers and names. Do not favour any outlet.

Input articles:
{articles}

Answer with this exact JSON object and nothing else:
{{
  "aggregatedSummary": "combined summary",
  "discrepancies": "conflicts with sources, or the no-discrepancy sentence",
  "confidenceScore": 0.92,
  "methodology": "short description"
}}
"""

EVENT_MERGING_PROMPT = """\
You are a news analyst reviewing events detected in separate processing runs.
Some of them may describe the same real-world event. Find groups of events that
should be merged into one.

Rules:
- Only group events that are clearly the same happening (same place, time and actors).
- Follow-up stories about a different development are separate events.
- List the most complete event first in eventIds; it becomes the surviving event.
- confidenceScore is between 0.0 and 1.0. Only propose groups you are confident in.
- If nothing should be merged, answer with [].

Events:
{events}

Answer with this exact JSON array and nothing else:
[
  {{
    "eventIds": [12, 15],
    "mergedTitle": "title for the merged event",
    "mergedEventType": "event type",
    "confidenceScore": 0.85,
    "reasoning": "why these are the same event"
  }}
]
"""


@dataclass(frozen=True)
class PromptTemplate:
    template_id: str
    operation: Operation
    text: str
    result_type: Any
    is_list: bool = False
    defaults: Dict[str, str] = field(default_factory=dict)

    def render(self, variables: Dict[str, Any]) -> str:
        """Substitute variables; non-string values are serialized as JSON."""
        values = dict(self.defaults)
        for name, value in variables.items():
            values[name] = value if isinstance(value, str) else json.dumps(
                value, ensure_ascii=False, indent=2, default=str,
            )
        return self.text.format(**values)

    def validate(self, data: Any) -> Any:
        """Deserialize parsed JSON into the template's result schema (raises ValidationError)."""
        if self.is_list:
            data = extract_list_from_response(data)
        elif isinstance(data, list) and len(data) == 1:
            data = data[0]
        return _adapter(self.result_type).validate_python(data)


_ADAPTERS: Dict[Any, TypeAdapter] = {}


def _adapter(tp) -> TypeAdapter:
    if tp not in _ADAPTERS:
        _ADAPTERS[tp] = TypeAdapter(tp)
    return _ADAPTERS[tp]


TEMPLATES: Dict[str, PromptTemplate] = {
    t.template_id: t
    for t in (
        PromptTemplate(
            SUMMARIZE_BATCH, Operation.SUMMARIZE, SUMMARIZE_BATCH_PROMPT,
            List[ArticleSummaryLLM], is_list=True,
        ),
        PromptTemplate(
            EVENT_CLUSTERING, Operation.CLUSTER, EVENT_CLUSTERING_PROMPT,
            List[ArticleClusterLLM], is_list=True,
        ),
        PromptTemplate(
            EVENT_AGGREGATION, Operation.AGGREGATE, EVENT_AGGREGATION_PROMPT,
            AggregationResultLLM, defaults={"no_discrepancy": NO_DISCREPANCY_SENTINEL},
        ),
        PromptTemplate(
            EVENT_MERGING, Operation.MERGE, EVENT_MERGING_PROMPT,
            List[MergeCandidateLLM], is_list=True,
        ),
    )
}


def get_template(template_id: str) -> PromptTemplate:
    try:
        return TEMPLATES[template_id]
    except KeyError:
        raise KeyError(f"Unknown prompt template: {template_id}") from None

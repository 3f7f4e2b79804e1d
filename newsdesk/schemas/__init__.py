"""
Schemas package - all data models for the newsdesk event pipeline.

Models are organized by domain in submodules:
  - base.py: Operation/mapping enums, budget table, fixed text
  - news.py: ArticleIn, ArticleReference
  - events.py: prompt payloads, EventView, StageResult, PipelineStats
  - llm_outputs.py: structured model output per prompt template
"""

from newsdesk.schemas.base import (
    Operation, MappingMethod, KeyHealthStatus, StageStatus, Budget, OPERATION_BUDGETS,
    NO_DISCREPANCY_SENTINEL, has_discrepancies,
)
from newsdesk.schemas.news import ArticleIn, ArticleReference
from newsdesk.schemas.events import (
    ArticleForSummary, ArticleForClustering, ArticleForAggregation, EventForMerge,
    EventView, EventFilter, StageResult, PipelineStats, KeyPoolHealth,
)
from newsdesk.schemas.llm_outputs import (
    ArticleClusterLLM, AggregationResultLLM, MergeCandidateLLM, ArticleSummaryLLM,
)

__all__ = [
    # base
    "Operation", "MappingMethod", "KeyHealthStatus", "StageStatus", "Budget",
    "OPERATION_BUDGETS", "NO_DISCREPANCY_SENTINEL", "has_discrepancies",
    # news
    "ArticleIn", "ArticleReference",
    # events
    "ArticleForSummary", "ArticleForClustering", "ArticleForAggregation", "EventForMerge",
    "EventView", "EventFilter", "StageResult", "PipelineStats", "KeyPoolHealth",
    # llm outputs
    "ArticleClusterLLM", "AggregationResultLLM", "MergeCandidateLLM", "ArticleSummaryLLM",
]

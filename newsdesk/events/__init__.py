# Event-processing engines
from .aggregation import AggregationEngine
from .errors import StageError
from .mapping import EventMappingEngine
from .merging import EventMergingEngine, weighted_confidence
from .pipeline import NewsPipeline, build_monitor, build_pipeline
from .repository import ArticleRepository, EventRepository, MappingRepository
from .summarization import SummarizationEngine, reconcile_summaries

__all__ = [
    "AggregationEngine",
    "EventMappingEngine",
    "EventMergingEngine",
    "SummarizationEngine",
    "NewsPipeline",
    "StageError",
    "build_pipeline",
    "build_monitor",
    "weighted_confidence",
    "reconcile_summaries",
    "ArticleRepository",
    "EventRepository",
    "MappingRepository",
]

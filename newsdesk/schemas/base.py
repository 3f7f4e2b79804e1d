"""
Common enums and fixed vocabulary used across the pipeline.

These define the closed set of external-API operations (each with its own
rolling-hour budget), mapping provenance tags, key-pool health levels and the
fixed strings the engines write when no model output is involved.
"""

from enum import Enum
from typing import Dict, NamedTuple


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════

class Operation(str, Enum):
    """External-API operation kinds. Values are the tags stored in the usage ledger."""
    SUMMARIZE = "SUMMARIZE"
    CLUSTER = "EVENT_MAPPING"
    AGGREGATE = "AGGREGATION"
    MERGE = "EVENT_MERGING"


class MappingMethod(str, Enum):
    """Provenance of an article → event mapping."""
    AI_CLUSTERING = "AI_CLUSTERING"
    AI_INDIVIDUAL = "AI_INDIVIDUAL"
    AI_MERGING = "AI_MERGING"
    MANUAL = "MANUAL"


class KeyHealthStatus(str, Enum):
    """Overall key-pool health."""
    HEALTHY = "HEALTHY"      # more than 3 keys usable
    WARNING = "WARNING"      # 2-3 keys usable
    CRITICAL = "CRITICAL"    # 0-1 keys usable


class StageStatus(str, Enum):
    COMPLETED = "COMPLETED"
    NOTHING_TO_DO = "NOTHING_TO_DO"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


# ══════════════════════════════════════════════════════════════════════════════
# RATE / TOKEN BUDGETS (per key, rolling hour)
# ══════════════════════════════════════════════════════════════════════════════

class Budget(NamedTuple):
    requests_per_hour: int
    tokens_per_hour: int


OPERATION_BUDGETS: Dict[Operation, Budget] = {
    Operation.SUMMARIZE: Budget(1000, 50_000),
    Operation.CLUSTER: Budget(500, 100_000),
    Operation.AGGREGATE: Budget(300, 150_000),
    Operation.MERGE: Budget(300, 100_000),
}


# ══════════════════════════════════════════════════════════════════════════════
# FIXED TEXT
# ══════════════════════════════════════════════════════════════════════════════

# Presence of this substring in Event.discrepancies means "sources agree".
NO_DISCREPANCY_SENTINEL = "No significant factual discrepancies found"
SINGLE_SOURCE_DISCREPANCY = f"{NO_DISCREPANCY_SENTINEL} (single source)"

SINGLE_ARTICLE_PREFIX = "Single report: "
SINGLE_ARTICLE_CONFIDENCE = 0.8

UNCATEGORIZED_EVENT_TYPE = "uncategorized"
INDIVIDUAL_EVENT_PREFIX = "Standalone report: "
INDIVIDUAL_EVENT_CONFIDENCE = 0.5

SUMMARY_PLACEHOLDER = "Sorry, a summary could not be generated for this article."
MIN_SUMMARY_LENGTH = 10


def has_discrepancies(discrepancies: str | None) -> bool:
    """Read-side flag: True when a processed event reports conflicting facts."""
    if not discrepancies:
        return False
    return NO_DISCREPANCY_SENTINEL.lower() not in discrepancies.lower()

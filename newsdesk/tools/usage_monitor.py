"""
Read-only usage statistics over the ledger and key pool, for the monitoring API.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..database import Database, utcnow
from ..schemas.base import KeyHealthStatus, Operation
from .key_pool import KeyRotationPool
from .usage_ledger import UsageLedger, usage_row_to_dict

logger = logging.getLogger(__name__)


class UsageMonitor:

    def __init__(self, db: Database, pool: KeyRotationPool):
        self.db = db
        self.pool = pool

    def detailed_usage(self) -> Dict[str, Any]:
        """Per-key hourly/daily usage, per-operation 24h counts, recent failures and limits."""
        now = utcnow()
        hour_ago, day_ago = now - timedelta(hours=1), now - timedelta(days=1)
        keys: Dict[str, Any] = {}
        with self.db.get_session() as session:
            ledger = UsageLedger(session)
            for name in self.pool.key_names:
                h_req, h_tok = ledger.usage_since(name, hour_ago)
                d_req, d_tok = ledger.usage_since(name, day_ago)
                keys[name] = {
                    "hourly_requests": h_req,
                    "hourly_tokens": h_tok,
                    "daily_requests": d_req,
                    "daily_tokens": d_tok,
                    "operations_24h": ledger.operation_counts(day_ago, key_name=name),
                    "usable": {op.value: self.pool.can_use(name, op) for op in Operation},
                }
            operations_24h = ledger.operation_counts(day_ago)
            failures = [usage_row_to_dict(r) for r in ledger.recent(limit=10, failures_only=True)]

        return {
            "timestamp": now.isoformat(),
            "keys": keys,
            "operations_24h": operations_24h,
            "recent_failures": failures,
            "limits": {
                op.value: {"requests_per_hour": b.requests_per_hour, "tokens_per_hour": b.tokens_per_hour}
                for op, b in self.pool.budgets.items()
            },
        }

    def usage_by_operation(self, operation: Operation) -> Dict[str, Any]:
        op = Operation(operation)
        now = utcnow()
        with self.db.get_session() as session:
            ledger = UsageLedger(session)
            totals = ledger.operation_summary(op)
            last_hour = ledger.operation_summary(op, since=now - timedelta(hours=1))["total"]
            last_day = ledger.operation_summary(op, since=now - timedelta(days=1))["total"]
        total = totals["total"]
        return {
            "operation": op.value,
            "total_calls": total,
            "successful_calls": totals["successes"],
            "failed_calls": total - totals["successes"],
            "success_rate": round(totals["successes"] * 100.0 / total, 1) if total else 0.0,
            "calls_last_hour": last_hour,
            "calls_last_24h": last_day,
            "avg_tokens": round(totals["tokens"] / total, 1) if total else 0.0,
        }

    def recommendations(self) -> List[str]:
        health = self.pool.health()
        recs: List[str] = []
        if health.total == 0:
            return ["No API keys configured. Set LLM_API_KEYS to enable text generation."]
        if health.status == KeyHealthStatus.CRITICAL:
            recs.append(
                f"Only {health.available_count} of {health.total} keys are under budget. "
                "Pause scheduled runs or add keys."
            )
            recs.append("Run event merging after the hourly window resets instead of now.")
        elif health.status == KeyHealthStatus.WARNING:
            recs.append(
                f"{health.available_count} of {health.total} keys are under budget. "
                "Spread aggregation runs out or raise AGGREGATION_DELAY_SECONDS."
            )
        else:
            recs.append("Key pool is healthy.")

        exhausted = [name for name, ok in health.per_key.items() if not ok]
        if exhausted:
            recs.append(f"Keys at or over budget: {', '.join(exhausted)}")

        recent_failures = self.recent_logs(limit=20, failures_only=True)
        if len(recent_failures) >= 10:
            recs.append("Many recent call failures. Check provider status and key validity.")
        return recs

    def recent_logs(
        self,
        limit: int = 50,
        key_name: Optional[str] = None,
        operation: Optional[Operation] = None,
        failures_only: bool = False,
    ) -> List[Dict[str, Any]]:
        with self.db.get_session() as session:
            rows = UsageLedger(session).recent(
                limit=limit, key_name=key_name, operation=operation, failures_only=failures_only,
            )
            return [usage_row_to_dict(r) for r in rows]

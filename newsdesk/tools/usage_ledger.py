"""
Usage ledger - append-only record of every external text-generation call.

The ledger is both the audit trail and the source of truth for rolling-hour
rate/token consumption. Rows are inserted, never updated or deleted.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import ApiUsageLogModel, utcnow
from ..schemas.base import Operation

logger = logging.getLogger(__name__)


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Cheap token estimate: fixed ratio of input characters, never below 1."""
    return max(1, len(text or "") // max(1, chars_per_token))


class UsageLedger:
    """Session-scoped access to the api_usage_log table."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        key_name: str,
        operation: Operation,
        token_estimate: int,
        success: bool,
        subject_id: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> ApiUsageLogModel:
        row = ApiUsageLogModel(
            key_name=key_name,
            operation=Operation(operation).value,
            subject_id=subject_id,
            token_estimate=token_estimate,
            success=success,
            error_message=error_message[:2000] if error_message else None,
            created_at=utcnow(),
        )
        self.session.add(row)
        self.session.flush()
        return row

    # ── Rolling-window consumption ────────────────────────────────────

    def usage_since(
        self,
        key_name: str,
        since: datetime,
        operation: Optional[Operation] = None,
    ) -> Tuple[int, int]:
        """(request_count, token_sum) for a key since `since`, optionally per operation."""
        q = self.session.query(
            func.count(ApiUsageLogModel.id),
            func.coalesce(func.sum(ApiUsageLogModel.token_estimate), 0),
        ).filter(
            ApiUsageLogModel.key_name == key_name,
            ApiUsageLogModel.created_at >= since,
        )
        if operation is not None:
            q = q.filter(ApiUsageLogModel.operation == Operation(operation).value)
        count, tokens = q.one()
        return int(count or 0), int(tokens or 0)

    def usage_last_hour(self, key_name: str, operation: Optional[Operation] = None) -> Tuple[int, int]:
        return self.usage_since(key_name, utcnow() - timedelta(hours=1), operation)

    def operation_counts(self, since: datetime, key_name: Optional[str] = None) -> Dict[str, int]:
        q = self.session.query(
            ApiUsageLogModel.operation, func.count(ApiUsageLogModel.id),
        ).filter(ApiUsageLogModel.created_at >= since)
        if key_name:
            q = q.filter(ApiUsageLogModel.key_name == key_name)
        return {op: int(n) for op, n in q.group_by(ApiUsageLogModel.operation).all()}

    def operation_summary(self, operation: Operation, since: Optional[datetime] = None) -> Dict[str, float]:
        """Totals for one operation: calls, successes, tokens."""
        q = self.session.query(
            func.count(ApiUsageLogModel.id),
            func.coalesce(func.sum(ApiUsageLogModel.token_estimate), 0),
        ).filter(ApiUsageLogModel.operation == Operation(operation).value)
        if since is not None:
            q = q.filter(ApiUsageLogModel.created_at >= since)
        total, tokens = q.one()
        successes = q.filter(ApiUsageLogModel.success.is_(True)).one()[0]
        return {"total": int(total or 0), "successes": int(successes or 0), "tokens": int(tokens or 0)}

    # ── Audit views ───────────────────────────────────────────────────

    def recent(
        self,
        limit: int = 50,
        key_name: Optional[str] = None,
        operation: Optional[Operation] = None,
        failures_only: bool = False,
    ) -> List[ApiUsageLogModel]:
        q = self.session.query(ApiUsageLogModel)
        if key_name:
            q = q.filter(ApiUsageLogModel.key_name == key_name)
        if operation is not None:
            q = q.filter(ApiUsageLogModel.operation == Operation(operation).value)
        if failures_only:
            q = q.filter(ApiUsageLogModel.success.is_(False))
        return q.order_by(ApiUsageLogModel.created_at.desc(), ApiUsageLogModel.id.desc()).limit(limit).all()

    def count(self) -> int:
        return self.session.query(func.count(ApiUsageLogModel.id)).scalar() or 0


def usage_row_to_dict(row: ApiUsageLogModel) -> dict:
    return {
        "id": row.id,
        "key_name": row.key_name,
        "operation": row.operation,
        "subject_id": row.subject_id,
        "token_estimate": row.token_estimate,
        "success": row.success,
        "error_message": row.error_message,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }

"""
API key rotation pool with rolling-hour budgets.

Each configured key has an independent request/token budget per operation
(see OPERATION_BUDGETS). Consumption is derived purely from the usage ledger,
so the pool holds no mutable counters: two pools over the same database
always agree.

Selection walks the configured key order and takes the first key that is
still under budget. When every key is exhausted the first key is returned
anyway (degraded mode) and health() reports CRITICAL; callers still make the
call and the ledger records the outcome.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..database import Database
from ..schemas.base import OPERATION_BUDGETS, Budget, KeyHealthStatus, Operation
from ..schemas.events import KeyPoolHealth
from .usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


class KeyRotationPool:
    """Selects a usable credential (by name) for an operation."""

    def __init__(
        self,
        db: Database,
        key_names: List[str],
        budgets: Optional[Dict[Operation, Budget]] = None,
    ):
        self.db = db
        self.key_names = list(key_names)
        self.budgets = budgets or OPERATION_BUDGETS
        if not self.key_names:
            logger.warning("Key pool is empty - every call will run without credentials")

    def can_use(self, key_name: str, operation: Operation) -> bool:
        """True iff the key's last-hour requests and tokens are both under the operation's limits."""
        budget = self.budgets[Operation(operation)]
        try:
            with self.db.get_session() as session:
                requests, tokens = UsageLedger(session).usage_last_hour(key_name)
        except SQLAlchemyError as e:
            logger.error(f"Key pool: could not read usage for {key_name}: {e}")
            return False
        return requests < budget.requests_per_hour and tokens < budget.tokens_per_hour

    def next_available(self, operation: Operation) -> Optional[str]:
        """First key in configured order that passes can_use; the first key if none do."""
        for name in self.key_names:
            if self.can_use(name, operation):
                return name
        if not self.key_names:
            return None
        logger.warning(
            f"Key pool: no key under budget for {Operation(operation).value}, "
            f"falling back to {self.key_names[0]} (degraded)"
        )
        return self.key_names[0]

    def health(self) -> KeyPoolHealth:
        """Classify the pool: HEALTHY (>3 usable), WARNING (2-3), CRITICAL (0-1)."""
        per_key = {name: all(self.can_use(name, op) for op in Operation) for name in self.key_names}
        available = sum(1 for ok in per_key.values() if ok)
        if available > 3:
            status = KeyHealthStatus.HEALTHY
        elif available >= 2:
            status = KeyHealthStatus.WARNING
        else:
            status = KeyHealthStatus.CRITICAL
        total = len(self.key_names)
        return KeyPoolHealth(
            status=status,
            available_count=available,
            total=total,
            health_percentage=round(available * 100.0 / total, 1) if total else 0.0,
            per_key=per_key,
        )

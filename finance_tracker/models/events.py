"""
Change Event Models

The transaction cache publishes one ChangeEvent per state change. Each
event carries a full, immutable snapshot of the cache taken after the
store mutation and the totals refresh have both completed, so a
subscriber never sees a list without its matching totals.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finance_tracker.models.transaction import Totals, Transaction, utcnow


class CacheStatus(str, Enum):
    """Cache state machine: idle -> loading -> {idle, error}."""
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


class ChangeEventType(str, Enum):
    """Kinds of cache state change."""
    LOAD_STARTED = "load_started"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    MUTATION_FAILED = "mutation_failed"
    ERROR_CLEARED = "error_cleared"


FAILURE_EVENTS = frozenset({
    ChangeEventType.LOAD_FAILED,
    ChangeEventType.MUTATION_FAILED,
})


class CacheSnapshot(BaseModel):
    """Point-in-time view of the transaction cache."""
    model_config = ConfigDict(frozen=True)

    transactions: tuple[Transaction, ...] = ()
    totals: Totals = Field(default_factory=Totals)
    is_loading: bool = False
    error: Optional[str] = None

    @property
    def status(self) -> CacheStatus:
        if self.is_loading:
            return CacheStatus.LOADING
        if self.error:
            return CacheStatus.ERROR
        return CacheStatus.IDLE


class ChangeEvent(BaseModel):
    """
    A single cache change.

    entity_id names the transaction the change is about, when there is one.
    """
    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utcnow)
    event_type: ChangeEventType
    snapshot: CacheSnapshot
    entity_id: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.event_type in FAILURE_EVENTS

    def to_log_dict(self) -> dict[str, Any]:
        """Flatten to keyword context for structured logging."""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "entity_id": self.entity_id,
            "status": self.snapshot.status.value,
            "transaction_count": len(self.snapshot.transactions),
            "balance": str(self.snapshot.totals.balance),
            "error_message": self.error_message,
        }

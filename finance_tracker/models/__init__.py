"""
Data Models Package

Pydantic models for transactions, categories and cache change events.
"""

from finance_tracker.models.category import Category
from finance_tracker.models.events import (
    CacheSnapshot,
    CacheStatus,
    ChangeEvent,
    ChangeEventType,
)
from finance_tracker.models.transaction import (
    Totals,
    Transaction,
    TransactionFilter,
    to_money,
    utcnow,
)

__all__ = [
    # Transaction models
    "Totals",
    "Transaction",
    "TransactionFilter",
    "to_money",
    "utcnow",
    # Category models
    "Category",
    # Event models
    "CacheSnapshot",
    "CacheStatus",
    "ChangeEvent",
    "ChangeEventType",
]

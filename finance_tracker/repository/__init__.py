"""Repository package."""

from finance_tracker.repository.categories import CategoryRepository
from finance_tracker.repository.errors import TransactionNotFoundError, ValidationError
from finance_tracker.repository.transactions import TransactionRepository

__all__ = [
    "CategoryRepository",
    "TransactionNotFoundError",
    "TransactionRepository",
    "ValidationError",
]

"""Repository-level exceptions."""

from finance_tracker.storage.interface import NotFoundError


class ValidationError(ValueError):
    """Bad input rejected before any store call (non-positive amount, empty title, ...)."""
    pass


class TransactionNotFoundError(NotFoundError):
    """Tried to update a transaction id that does not exist."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")

"""Reactive state package."""

from finance_tracker.state.cache import TransactionCache
from finance_tracker.state.notifier import ChangeNotifier, Listener

__all__ = ["ChangeNotifier", "Listener", "TransactionCache"]

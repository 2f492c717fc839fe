"""Logging package."""

from finance_tracker.observability.logger import configure_logging

__all__ = ["configure_logging"]

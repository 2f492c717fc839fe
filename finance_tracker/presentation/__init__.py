"""Presentation helpers package."""

from finance_tracker.presentation.formatting import (
    category_icon,
    format_currency,
    format_signed_amount,
    relative_date,
)

__all__ = [
    "category_icon",
    "format_currency",
    "format_signed_amount",
    "relative_date",
]

"""
Display Formatting

Pure derived formatting for a presentation layer. Nothing here is
stored; every value is computed from a Transaction on demand.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Union

from finance_tracker.models.transaction import Transaction, to_money
from finance_tracker.storage.schema import DEFAULT_CATEGORIES


DEFAULT_ICON = "category"

CATEGORY_ICONS: dict[str, str] = {
    category["name"].lower(): category["icon"] for category in DEFAULT_CATEGORIES
}


def format_currency(value: Any, symbol: str = "$") -> str:
    """5000 -> '$5,000.00'; negative values get a leading minus."""
    amount: Decimal = to_money(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_signed_amount(transaction: Transaction, symbol: str = "$") -> str:
    """'+$5,000.00' for income, '-$125.50' for an expense."""
    prefix = "-" if transaction.is_expense else "+"
    return f"{prefix}{format_currency(transaction.amount, symbol)}"


def relative_date(value: Union[datetime, date], today: Optional[date] = None) -> str:
    """
    Today / Yesterday / 'N days ago' within the last week.

    Anything older, or in the future, is shown as e.g. 'Jan 5'.
    """
    day = value.date() if isinstance(value, datetime) else value
    today = today or date.today()
    difference = (today - day).days

    if difference == 0:
        return "Today"
    if difference == 1:
        return "Yesterday"
    if 1 < difference < 7:
        return f"{difference} days ago"
    return f"{day:%b} {day.day}"


def category_icon(category: str) -> str:
    """Icon name for a category label (case-insensitive)."""
    return CATEGORY_ICONS.get(category.strip().lower(), DEFAULT_ICON)

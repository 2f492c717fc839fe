"""
Core Data Models for Finance Tracker

The Transaction model is the only entity the core persists. It is the
strongly typed form used everywhere above the store; the persisted row
form (snake_case columns, ISO-8601 strings, 0/1 integers) only exists at
the store boundary, through to_row() / from_row().

Amounts are positive Decimals. Direction is carried exclusively by
is_expense; the signed value is derived (display_amount), never stored.
"""

from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENTS = Decimal("0.01")


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_transaction_id() -> str:
    return str(uuid4())


def to_money(value: Any) -> Decimal:
    """Convert a stored number (int, float, str or Decimal) to a 2-place Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_datetime(value: Any) -> Any:
    """Promote a plain date to midnight of that day; leave anything else alone."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    return value


def end_of_day(value: date) -> datetime:
    """Last representable instant of a plain date."""
    return datetime.combine(value, time.max)


def to_utc(value: datetime) -> datetime:
    """Convert an aware datetime to UTC; naive values are left as they are."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionFilter(str, Enum):
    """Type filters offered by the transaction list."""
    ALL = "All"
    INCOME = "Income"
    EXPENSE = "Expense"


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense transaction.

    Invariants enforced here:
    - amount is strictly positive with at most two decimal places
    - title is non-empty after stripping whitespace
    - updated_at is never earlier than created_at
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: str = Field(
        default_factory=new_transaction_id,
        min_length=1,
        description="Unique transaction id (UUID4 string)"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the transaction; scopes every query"
    )

    # User-entered data
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display label"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive magnitude; the sign comes from is_expense"
    )
    category: str = Field(
        ...,
        max_length=100,
        description="Free-form category label"
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Optional free text"
    )
    date: datetime = Field(
        ...,
        description="User-assigned transaction date"
    )
    is_expense: bool = Field(
        ...,
        description="True for an outflow, False for an inflow"
    )

    # Sync and bookkeeping
    is_synced: bool = Field(
        default=False,
        description="Set only by an explicit mark-synced batch"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="Creation time (UTC), immutable"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        description="Last update time (UTC)"
    )

    @field_validator('date', mode='before')
    @classmethod
    def promote_plain_date(cls, v: Any) -> Any:
        return as_datetime(v)

    @field_validator('date')
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        """Aware dates are stored in UTC so their ISO text sorts by instant."""
        return to_utc(v)

    @field_validator('created_at', 'updated_at')
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive bookkeeping timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return to_utc(v)

    @model_validator(mode='after')
    def validate_timestamps(self) -> 'Transaction':
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        return self

    @property
    def display_amount(self) -> Decimal:
        """Signed amount: negative for expenses."""
        return -self.amount if self.is_expense else self.amount

    def to_row(self) -> dict[str, Any]:
        """Convert to the persisted row representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "amount": float(self.amount),
            "category": self.category,
            "notes": self.notes,
            "date": self.date.isoformat(),
            "is_expense": 1 if self.is_expense else 0,
            "is_synced": 1 if self.is_synced else 0,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Any) -> 'Transaction':
        """Build a Transaction from a stored row (dict or sqlite Row)."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            amount=to_money(row["amount"]),
            category=row["category"],
            notes=row["notes"],
            date=datetime.fromisoformat(row["date"]),
            is_expense=int(row["is_expense"]) == 1,
            is_synced=int(row["is_synced"]) == 1,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def __str__(self) -> str:
        return (
            f"Transaction(id: {self.id}, title: {self.title}, "
            f"amount: {self.display_amount}, category: {self.category})"
        )


class Totals(BaseModel):
    """Income, expense and balance for one user."""
    model_config = ConfigDict(frozen=True)

    income: Decimal = Field(default=Decimal("0.00"))
    expense: Decimal = Field(default=Decimal("0.00"))
    balance: Decimal = Field(default=Decimal("0.00"))

    @classmethod
    def from_sums(cls, income: Any, expense: Any) -> 'Totals':
        income_total = to_money(income)
        expense_total = to_money(expense)
        return cls(
            income=income_total,
            expense=expense_total,
            balance=income_total - expense_total,
        )

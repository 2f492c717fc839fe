"""Category model: the seeded menu of transaction categories."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Category(BaseModel):
    """
    A transaction category.

    Default categories have user_id None and is_default True.
    Transactions reference categories by name only; the link is not
    enforced at the data layer.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(..., min_length=1, description="Icon name for the UI")
    color: Optional[str] = None
    is_expense: bool = True
    user_id: Optional[str] = None
    is_default: bool = False

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "is_expense": 1 if self.is_expense else 0,
            "user_id": self.user_id,
            "is_default": 1 if self.is_default else 0,
        }

    @classmethod
    def from_row(cls, row: Any) -> 'Category':
        return cls(
            id=row["id"],
            name=row["name"],
            icon=row["icon"],
            color=row["color"],
            is_expense=int(row["is_expense"]) == 1,
            user_id=row["user_id"],
            is_default=int(row["is_default"]) == 1,
        )

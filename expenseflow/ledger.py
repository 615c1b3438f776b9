from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

ZERO = Decimal("0")

DEFAULT_ICON = "Tag"
DEFAULT_COLOR = "#6366f1"


def coerce_decimal(value: Decimal | float | int | str) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class TransactionType:
    INCOME = "income"
    EXPENSE = "expense"
    values = {INCOME, EXPENSE}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid transaction type.")
        return normalized


@dataclass(frozen=True)
class Transaction:
    amount: Decimal
    type: str
    category: str
    date: date
    description: str = ""
    id: Optional[int] = None
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.amount <= ZERO:
            raise ValueError("Amount must be greater than zero.")

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME


@dataclass(frozen=True)
class Category:
    id: str
    label: str
    owner_id: Optional[int] = None
    icon: str = DEFAULT_ICON
    color: str = DEFAULT_COLOR
    is_default: bool = False
    budget: Optional[Decimal] = None


DEFAULT_CATEGORIES = [
    Category(id="food", label="Food & Dining", icon="Utensils", color="#f97316", is_default=True),
    Category(id="transport", label="Transport", icon="Car", color="#3b82f6", is_default=True),
    Category(id="shopping", label="Shopping", icon="ShoppingBag", color="#ec4899", is_default=True),
    Category(
        id="entertainment",
        label="Entertainment",
        icon="Clapperboard",
        color="#8b5cf6",
        is_default=True,
    ),
    Category(id="bills", label="Bills & Utilities", icon="Receipt", color="#ef4444", is_default=True),
    Category(id="health", label="Health", icon="Heart", color="#22c55e", is_default=True),
    Category(id="income", label="Income", icon="Wallet", color="#22c55e", is_default=True),
    Category(id="other", label="Other", icon="Package", color="#64748b", is_default=True),
]


def normalize_category_key(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


def category_labels(categories: Iterable[Category]) -> dict[str, str]:
    """Map category keys to display labels.

    A user's own category wins over a global default sharing the same key.
    """
    labels: dict[str, str] = {}
    owned: set[str] = set()
    for category in categories:
        if category.owner_id is None and category.id in owned:
            continue
        labels[category.id] = category.label
        if category.owner_id is not None:
            owned.add(category.id)
    return labels

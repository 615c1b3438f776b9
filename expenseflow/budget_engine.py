from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from expenseflow.ledger import ZERO, Category, coerce_decimal

HUNDRED = Decimal("100")

SEVERITY_WARNING = "warning"
SEVERITY_EXCEEDED = "exceeded"


@dataclass(frozen=True)
class BudgetAlert:
    category_id: str
    category_label: str
    budget: Decimal
    spent: Decimal
    percentage: Decimal
    remaining: Decimal
    severity: str


@dataclass(frozen=True)
class NoBudgetConfigured:
    """Refusal returned when a category has no monthly budget to compare against."""

    category_id: str
    reason: str = "no-budget"


def evaluate_budget_alert(
    category: Category,
    spent: Decimal,
) -> Union[BudgetAlert, NoBudgetConfigured]:
    if category.budget is None:
        return NoBudgetConfigured(category_id=category.id)
    budget = coerce_decimal(category.budget)
    if budget <= ZERO:
        raise ValueError("budget must be greater than zero.")
    spent = coerce_decimal(spent)

    percentage = spent / budget * HUNDRED
    remaining = max(budget - spent, ZERO)
    severity = SEVERITY_EXCEEDED if percentage >= HUNDRED else SEVERITY_WARNING

    return BudgetAlert(
        category_id=category.id,
        category_label=category.label,
        budget=budget,
        spent=spent,
        percentage=percentage,
        remaining=remaining,
        severity=severity,
    )


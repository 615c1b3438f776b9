from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import List, Mapping, Optional

from expenseflow.ledger import ZERO

TOP_CATEGORY_LIMIT = 5
HUNDRED = Decimal("100")
PERCENT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class TopCategory:
    name: str
    amount: Decimal
    percentage: Decimal


def share_of_total(amount: Decimal, total: Decimal) -> Decimal:
    """Percentage of ``total`` held by ``amount``, truncated to two decimals.

    Truncation (ROUND_DOWN) keeps the shares of a full ranking from summing
    above 100. A non-positive total yields 0.
    """
    if total <= ZERO:
        return ZERO
    return (amount / total * HUNDRED).quantize(PERCENT_QUANTUM, rounding=ROUND_DOWN)


def rank_top_categories(
    category_totals: Mapping[str, Decimal],
    total_expenses: Decimal,
    labels: Optional[Mapping[str, str]] = None,
    limit: int = TOP_CATEGORY_LIMIT,
) -> List[TopCategory]:
    """Rank categories by spend and keep the largest ``limit`` entries.

    Unknown keys keep their raw key as the display name. Equal amounts keep
    the order in which ``category_totals`` yields them.
    Percentages come from ``share_of_total`` and are truncated, not rounded.
    """
    labels = labels or {}
    entries = [
        TopCategory(
            name=labels.get(key, key),
            amount=amount,
            percentage=share_of_total(amount, total_expenses),
        )
        for key, amount in category_totals.items()
    ]
    entries.sort(key=lambda entry: entry.amount, reverse=True)
    return entries[:limit]

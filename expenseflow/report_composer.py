from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from expenseflow.periods import AggregationWindow
from expenseflow.ranking import TopCategory
from expenseflow.statistics_engine import LedgerSummary


@dataclass(frozen=True)
class Report:
    period_label: str
    start_date: date
    end_date: date
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    top_categories: List[TopCategory]
    transaction_count: int
    currency: str


def compose_report(
    window: AggregationWindow,
    summary: LedgerSummary,
    top_categories: List[TopCategory],
    currency: str,
) -> Report:
    return Report(
        period_label=window.label,
        start_date=window.start,
        end_date=window.end,
        total_income=summary.total_income,
        total_expenses=summary.total_expenses,
        balance=summary.balance,
        top_categories=list(top_categories),
        transaction_count=summary.transaction_count,
        currency=currency,
    )

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from expenseflow.ledger import ZERO, Transaction, TransactionType, coerce_decimal
from expenseflow.periods import AggregationWindow, shift_month_keep_day

TREND_MONTHS = 6
TYPE_ORDER = {TransactionType.EXPENSE: 0, TransactionType.INCOME: 1}


@dataclass(frozen=True)
class LedgerSummary:
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    category_totals: dict[str, Decimal] = field(default_factory=dict)
    transaction_count: int = 0


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: Decimal


@dataclass(frozen=True)
class MonthlyBucket:
    year: int
    month: int
    type: str
    total: Decimal


@dataclass(frozen=True)
class StatisticsResult:
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    category_breakdown: List[CategoryTotal]
    monthly_data: List[MonthlyBucket]


def summarize(
    transactions: Iterable[Transaction],
    window: Optional[AggregationWindow] = None,
) -> LedgerSummary:
    total_income = ZERO
    total_expenses = ZERO
    category_totals: dict[str, Decimal] = {}
    count = 0
    for txn in transactions:
        if window is not None and not window.contains(txn.date):
            continue
        count += 1
        amount = coerce_decimal(txn.amount)
        if txn.is_income:
            total_income += amount
        elif txn.is_expense:
            total_expenses += amount
            category_totals[txn.category] = category_totals.get(txn.category, ZERO) + amount

    return LedgerSummary(
        total_income=total_income,
        total_expenses=total_expenses,
        balance=total_income - total_expenses,
        category_totals=category_totals,
        transaction_count=count,
    )


def category_breakdown(category_totals: dict[str, Decimal]) -> List[CategoryTotal]:
    ordered = sorted(category_totals.items(), key=lambda item: item[1], reverse=True)
    return [CategoryTotal(category=key, total=total) for key, total in ordered]


def monthly_series(
    transactions: Iterable[Transaction],
    now: date,
    months: int = TREND_MONTHS,
) -> List[MonthlyBucket]:
    """Sum amounts per ``(year, month, type)`` over the trailing months.

    Transactions dated on or after ``now`` shifted back ``months`` months
    (same day of month) are bucketed under their own calendar month. Months
    without transactions produce no bucket.
    """
    if months < 1:
        raise ValueError("months must be at least 1.")
    series_start = shift_month_keep_day(now, -months)

    totals: dict[tuple[int, int, str], Decimal] = {}
    for txn in transactions:
        if txn.date < series_start:
            continue
        key = (txn.date.year, txn.date.month, txn.type)
        totals[key] = totals.get(key, ZERO) + coerce_decimal(txn.amount)

    ordered_keys = sorted(
        totals,
        key=lambda key: (key[0], key[1], TYPE_ORDER.get(key[2], len(TYPE_ORDER))),
    )
    return [
        MonthlyBucket(year=year, month=month, type=txn_type, total=totals[(year, month, txn_type)])
        for year, month, txn_type in ordered_keys
    ]


def compute_statistics(transactions: Iterable[Transaction], now: date) -> StatisticsResult:
    items = list(transactions)
    summary = summarize(items)
    return StatisticsResult(
        total_income=summary.total_income,
        total_expenses=summary.total_expenses,
        balance=summary.balance,
        category_breakdown=category_breakdown(summary.category_totals),
        monthly_data=monthly_series(items, now),
    )

"""Aggregation operations exposed to the API layer.

Every call reads what it needs from the ledger store and computes from
scratch. A failed read propagates to the caller; no partial result is
returned.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional, Union

from expenseflow.budget_engine import BudgetAlert, NoBudgetConfigured, evaluate_budget_alert
from expenseflow.ledger import TransactionType, category_labels
from expenseflow.periods import month_start, resolve_period
from expenseflow.ranking import rank_top_categories
from expenseflow.report_composer import Report, compose_report
from expenseflow.statistics_engine import StatisticsResult, compute_statistics, summarize
from expenseflow.store import LedgerStore

logger = logging.getLogger(__name__)


class AggregationService:
    def __init__(self, store: LedgerStore, clock: Callable[[], date] = date.today) -> None:
        self.store = store
        self.clock = clock

    def compute_statistics(self, user_id: int) -> StatisticsResult:
        self.store.get_user(user_id)
        items = self.store.fetch_transactions(user_id)
        return compute_statistics(items, self.clock())

    def build_report(
        self,
        user_id: int,
        period_selector: Optional[str],
        currency_symbol: str,
    ) -> Report:
        self.store.get_user(user_id)
        window = resolve_period(period_selector, self.clock())
        items = self.store.fetch_transactions(
            user_id,
            start_date=window.start,
            end_date=window.end,
        )
        labels = category_labels(self.store.fetch_categories(user_id))

        summary = summarize(items, window)
        top_categories = rank_top_categories(
            summary.category_totals,
            summary.total_expenses,
            labels,
        )
        logger.info(
            "Report built for user %s: %s (%d transactions)",
            user_id,
            window.label,
            summary.transaction_count,
        )
        return compose_report(window, summary, top_categories, currency_symbol)

    def evaluate_budget_alert(
        self,
        user_id: int,
        category_id: str,
    ) -> Union[BudgetAlert, NoBudgetConfigured]:
        self.store.get_user(user_id)
        category = self.store.get_category(user_id, category_id)
        if category.budget is None:
            return NoBudgetConfigured(category_id=category.id)

        today = self.clock()
        totals = self.store.grouped_sum(
            user_id,
            group_by="category",
            type=TransactionType.EXPENSE,
            category=category.id,
            start_date=month_start(today),
            end_date=today,
        )
        result = evaluate_budget_alert(category, totals.get(category.id, 0))
        if isinstance(result, BudgetAlert):
            logger.info(
                "Budget alert for user %s on %s: %s (%s%%)",
                user_id,
                category.id,
                result.severity,
                result.percentage,
            )
        return result

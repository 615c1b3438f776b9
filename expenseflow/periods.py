from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

logger = logging.getLogger(__name__)

WEEK_DAYS = 7
DEFAULT_PERIOD = "month"
SUPPORTED_PERIODS = {"week", "month", "year"}


@dataclass(frozen=True)
class AggregationWindow:
    start: date
    end: date
    label: str

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_start(value: date) -> date:
    return value.replace(day=1)


def shift_month_keep_day(value: date, months: int) -> date:
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    day = min(value.day, last_day)
    return date(year, month, day)


def normalize_period(selector: Optional[str]) -> str:
    normalized = (selector or "").strip().lower()
    if normalized not in SUPPORTED_PERIODS:
        if normalized:
            logger.debug("Unknown period %r, falling back to %s", selector, DEFAULT_PERIOD)
        return DEFAULT_PERIOD
    return normalized


def resolve_period(selector: Optional[str], now: date) -> AggregationWindow:
    """Turn a ``week``/``month``/``year`` selector into a concrete window.

    Unrecognized selectors resolve to the current month rather than failing.
    """
    period = normalize_period(selector)
    if period == "week":
        return AggregationWindow(
            start=now - timedelta(days=WEEK_DAYS),
            end=now,
            label="Last 7 Days",
        )
    if period == "year":
        return AggregationWindow(
            start=date(now.year, 1, 1),
            end=now,
            label=f"Year {now.year}",
        )
    return AggregationWindow(
        start=month_start(now),
        end=now,
        label=f"{calendar.month_name[now.month]} {now.year}",
    )

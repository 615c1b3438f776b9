import unittest
from datetime import date
from decimal import Decimal

from expenseflow.periods import AggregationWindow
from expenseflow.ranking import TopCategory
from expenseflow.report_composer import compose_report
from expenseflow.statistics_engine import LedgerSummary


class ComposeReportTests(unittest.TestCase):
    def test_assembles_window_summary_and_ranking(self) -> None:
        window = AggregationWindow(
            start=date(2024, 1, 1),
            end=date(2024, 3, 15),
            label="Year 2024",
        )
        summary = LedgerSummary(
            total_income=Decimal("3000"),
            total_expenses=Decimal("450"),
            balance=Decimal("2550"),
            category_totals={"food": Decimal("450")},
            transaction_count=7,
        )
        top = [TopCategory(name="Food & Dining", amount=Decimal("450"), percentage=Decimal("100"))]

        report = compose_report(window, summary, top, "€")

        self.assertEqual(report.period_label, "Year 2024")
        self.assertEqual(report.start_date, date(2024, 1, 1))
        self.assertEqual(report.end_date, date(2024, 3, 15))
        self.assertEqual(report.total_income, Decimal("3000"))
        self.assertEqual(report.total_expenses, Decimal("450"))
        self.assertEqual(report.balance, Decimal("2550"))
        self.assertEqual(report.top_categories, top)
        self.assertEqual(report.transaction_count, 7)
        self.assertEqual(report.currency, "€")


if __name__ == "__main__":
    unittest.main()

import unittest
from datetime import date
from decimal import Decimal

from expenseflow.ledger import (
    Category,
    Transaction,
    TransactionType,
    category_labels,
    coerce_decimal,
    normalize_category_key,
)


class LedgerTests(unittest.TestCase):
    def test_coerce_decimal_keeps_decimals_and_converts_others(self) -> None:
        value = Decimal("12.30")

        self.assertIs(coerce_decimal(value), value)
        self.assertEqual(coerce_decimal(0.1), Decimal("0.1"))
        self.assertEqual(coerce_decimal(7), Decimal("7"))
        self.assertEqual(coerce_decimal("45.50"), Decimal("45.50"))

    def test_transaction_requires_positive_amount(self) -> None:
        with self.assertRaises(ValueError):
            Transaction(amount=Decimal("0"), type="expense", category="food", date=date(2024, 3, 1))

    def test_transaction_type_validation(self) -> None:
        self.assertEqual(TransactionType.validate(" Income "), "income")
        with self.assertRaises(ValueError):
            TransactionType.validate("transfer")

    def test_normalize_category_key(self) -> None:
        self.assertEqual(normalize_category_key("  Pet   Care "), "pet-care")

    def test_own_category_label_shadows_default(self) -> None:
        labels = category_labels(
            [
                Category(id="food", label="Groceries", owner_id=3),
                Category(id="food", label="Food & Dining", is_default=True),
                Category(id="health", label="Health", is_default=True),
            ]
        )

        self.assertEqual(labels, {"food": "Groceries", "health": "Health"})


if __name__ == "__main__":
    unittest.main()

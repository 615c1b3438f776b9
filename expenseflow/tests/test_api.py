import os
import unittest
from datetime import date
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient

from expenseflow.main import app, get_service, get_store
from expenseflow.service import AggregationService
from expenseflow.store import LedgerStore

TODAY = date(2024, 3, 15)


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = LedgerStore.from_url("sqlite://")
        self.store.seed_default_categories()
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_service] = lambda: AggregationService(
            self.store, clock=lambda: TODAY
        )
        self.client = TestClient(app)

        response = self.client.post(
            "/auth/signup",
            json={"name": "Ada", "email": "Ada@Example.com", "password": "secret1"},
        )
        self.assertEqual(response.status_code, 201)
        self.user_id = response.json()["id"]
        self.headers = {"x-user-id": str(self.user_id)}

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def post_transaction(self, **payload):
        return self.client.post("/transactions", json=payload, headers=self.headers)

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_login(self) -> None:
        ok = self.client.post(
            "/auth/login", json={"email": "ada@example.com", "password": "secret1"}
        )
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["email"], "ada@example.com")

        bad = self.client.post(
            "/auth/login", json={"email": "ada@example.com", "password": "wrong"}
        )
        self.assertEqual(bad.status_code, 401)

    def test_me_returns_current_user(self) -> None:
        me = self.client.get("/auth/me", headers=self.headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["id"], self.user_id)
        self.assertEqual(me.json()["email"], "ada@example.com")
        self.assertEqual(me.json()["name"], "Ada")
        self.assertNotIn("hashed_password", me.json())

        self.assertEqual(self.client.get("/auth/me").status_code, 401)

    def test_signup_validation_and_duplicates(self) -> None:
        short = self.client.post(
            "/auth/signup",
            json={"name": "Bob", "email": "bob@example.com", "password": "123"},
        )
        self.assertEqual(short.status_code, 400)

        duplicate = self.client.post(
            "/auth/signup",
            json={"name": "Ada", "email": "ada@example.com", "password": "secret1"},
        )
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["code"], "CONFLICT")

    def test_identity_header_required(self) -> None:
        self.assertEqual(self.client.get("/transactions").status_code, 401)
        self.assertEqual(
            self.client.get("/transactions", headers={"x-user-id": "abc"}).status_code, 400
        )
        self.assertEqual(
            self.client.get("/transactions", headers={"x-user-id": "999"}).status_code, 404
        )

    def test_transaction_crud(self) -> None:
        created = self.post_transaction(
            type="Expense",
            amount="12.50",
            category="Food",
            description="  Lunch ",
            date="2024-03-02",
        )
        self.assertEqual(created.status_code, 201)
        body = created.json()
        self.assertEqual(body["type"], "expense")
        self.assertEqual(body["category"], "food")
        self.assertEqual(body["description"], "Lunch")

        txn_id = body["id"]
        fetched = self.client.get(f"/transactions/{txn_id}", headers=self.headers)
        self.assertEqual(Decimal(fetched.json()["amount"]), Decimal("12.50"))

        updated = self.client.put(
            f"/transactions/{txn_id}", json={"amount": "20"}, headers=self.headers
        )
        self.assertEqual(Decimal(updated.json()["amount"]), Decimal("20"))
        self.assertEqual(updated.json()["description"], "Lunch")

        listed = self.client.get(
            "/transactions", params={"search": "lunch"}, headers=self.headers
        )
        self.assertEqual(len(listed.json()), 1)

        deleted = self.client.delete(f"/transactions/{txn_id}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        missing = self.client.get(f"/transactions/{txn_id}", headers=self.headers)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "NOT_FOUND")

    def test_transaction_validation(self) -> None:
        zero = self.post_transaction(
            type="expense", amount="0", category="food", description="Nothing"
        )
        self.assertEqual(zero.status_code, 400)

        wrong_type = self.post_transaction(
            type="transfer", amount="5", category="food", description="Move"
        )
        self.assertEqual(wrong_type.status_code, 400)

    def test_statistics_endpoint(self) -> None:
        self.post_transaction(
            type="expense", amount="50", category="food", description="Groceries", date="2024-03-02"
        )
        self.post_transaction(
            type="income", amount="1000", category="income", description="Salary", date="2024-01-01"
        )

        response = self.client.get("/transactions/statistics", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(Decimal(body["balance"]), Decimal("950"))
        self.assertEqual(body["category_breakdown"][0]["category"], "food")
        self.assertEqual(
            [(item["month"], item["type"]) for item in body["monthly_data"]],
            [(1, "income"), (3, "expense")],
        )

    def test_report_endpoint(self) -> None:
        self.post_transaction(
            type="expense", amount="50", category="food", description="Groceries", date="2024-03-02"
        )
        self.post_transaction(
            type="expense", amount="30", category="food", description="Dinner", date="2024-03-10"
        )
        self.post_transaction(
            type="income", amount="1000", category="income", description="Salary", date="2024-03-01"
        )

        response = self.client.post(
            "/reports", json={"period": "month", "currency": "$"}, headers=self.headers
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["period_label"], "March 2024")
        self.assertEqual(Decimal(body["total_income"]), Decimal("1000"))
        self.assertEqual(Decimal(body["total_expenses"]), Decimal("80"))
        self.assertEqual(Decimal(body["balance"]), Decimal("920"))
        self.assertEqual(body["top_categories"][0]["name"], "Food & Dining")
        self.assertEqual(Decimal(body["top_categories"][0]["percentage"]), Decimal("100"))
        self.assertEqual(body["transaction_count"], 3)
        self.assertEqual(body["currency"], "$")

    def test_category_endpoints_and_budget_alert(self) -> None:
        listed = self.client.get("/categories", headers=self.headers)
        self.assertEqual(len(listed.json()), 8)

        no_budget = self.client.get("/budget/alerts/food", headers=self.headers)
        self.assertEqual(no_budget.status_code, 400)
        self.assertEqual(no_budget.json()["code"], "NO_BUDGET")

        budgeted = self.client.put(
            "/categories/food", json={"budget": "60"}, headers=self.headers
        )
        self.assertEqual(budgeted.status_code, 200)
        self.assertEqual(Decimal(budgeted.json()["budget"]), Decimal("60"))

        relabel = self.client.put(
            "/categories/food", json={"label": "Groceries"}, headers=self.headers
        )
        self.assertEqual(relabel.status_code, 400)

        self.post_transaction(
            type="expense", amount="45", category="food", description="Groceries", date="2024-03-05"
        )
        alert = self.client.get("/budget/alerts/food", headers=self.headers)
        self.assertEqual(alert.status_code, 200)
        self.assertEqual(alert.json()["severity"], "warning")
        self.assertEqual(Decimal(alert.json()["percentage"]), Decimal("75"))
        self.assertEqual(Decimal(alert.json()["remaining"]), Decimal("15"))

        created = self.client.post(
            "/categories", json={"id": "Pet Care", "label": "Pet Care"}, headers=self.headers
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["id"], "pet-care")

        self.assertEqual(
            self.client.delete("/categories/food", headers=self.headers).status_code, 400
        )
        self.assertEqual(
            self.client.delete("/categories/pet-care", headers=self.headers).status_code, 200
        )
        self.assertEqual(
            self.client.get("/budget/alerts/pet-care", headers=self.headers).status_code, 404
        )


if __name__ == "__main__":
    unittest.main()

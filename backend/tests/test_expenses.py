"""
Expense tests.

Verifies:
- Expenses are recorded against the caller's effective store
- Batch creation skips empty items
- Store scoping on reads and approval restricted to accounts staff
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from dsr.extensions import db
from dsr.models import Expense
from dsr.time_utils import today


def add_expense(store, user, *, expense_date=None, category="supplies", amount="40.00", payment_method="petty_cash", status="pending"):
    expense = Expense(
        store_id=store.id,
        expense_date=expense_date or today(),
        category=category,
        description="test expense",
        amount=Decimal(amount),
        payment_method=payment_method,
        requested_by=user.id,
        approval_status=status,
    )
    db.session.add(expense)
    db.session.commit()
    return expense


class TestCreateExpense:

    def test_create(self, client, cashier_headers, cashier_a, store_a):
        resp = client.post(
            "/api/v1/expenses",
            json={
                "expense_date": today().isoformat(),
                "category": "cleaning",
                "description": "Floor cleaner",
                "amount": "120.00",
                "voucher_number": "PC-17",
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        expense = resp.get_json()["expense"]
        assert expense["store_id"] == store_a.id
        assert expense["requested_by"] == cashier_a.id
        assert expense["payment_method"] == "petty_cash"
        assert expense["approval_status"] == "pending"

    def test_missing_fields(self, client, cashier_headers):
        resp = client.post(
            "/api/v1/expenses",
            json={"expense_date": today().isoformat(), "amount": 10},
            headers=cashier_headers,
        )
        assert resp.status_code == 400

    def test_invalid_payment_method(self, client, cashier_headers):
        resp = client.post(
            "/api/v1/expenses",
            json={
                "expense_date": today().isoformat(),
                "category": "misc",
                "description": "x",
                "amount": 10,
                "payment_method": "barter",
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 400

    def test_batch(self, client, manager_headers, store_a):
        resp = client.post(
            "/api/v1/expenses/batch",
            json={
                "expense_date": today().isoformat(),
                "expenses": [
                    {"category": "tea", "description": "Staff tea", "amount": 60},
                    {"category": "tea", "description": "Nothing", "amount": 0},
                    {"category": "courier", "description": "Parcel", "amount": "85.5", "payment_method": "bank_transfer"},
                ],
            },
            headers=manager_headers,
        )
        assert resp.status_code == 201
        expenses = resp.get_json()["expenses"]
        assert [e["category"] for e in expenses] == ["tea", "courier"]
        assert {e["store_id"] for e in expenses} == {store_a.id}

    def test_batch_nothing_valid(self, client, manager_headers):
        resp = client.post(
            "/api/v1/expenses/batch",
            json={"expense_date": today().isoformat(), "expenses": []},
            headers=manager_headers,
        )
        assert resp.status_code == 400


class TestListExpenses:

    def test_scoped_to_store(self, client, cashier_headers, cashier_a, cashier_b, store_a, store_b):
        add_expense(store_a, cashier_a)
        add_expense(store_b, cashier_b)
        rows = client.get("/api/v1/expenses", headers=cashier_headers).get_json()
        assert [r["store_id"] for r in rows] == [store_a.id]
        assert rows[0]["requested_by_user"]["first_name"] == "Cashier_A"

    def test_privileged_all_stores(self, client, super_headers, cashier_a, cashier_b, store_a, store_b):
        add_expense(store_a, cashier_a)
        add_expense(store_b, cashier_b)
        assert len(client.get("/api/v1/expenses", headers=super_headers).get_json()) == 2

    def test_category_filter(self, client, manager_headers, cashier_a, store_a):
        add_expense(store_a, cashier_a, category="tea")
        add_expense(store_a, cashier_a, category="rent")
        rows = client.get("/api/v1/expenses?category=rent", headers=manager_headers).get_json()
        assert [r["category"] for r in rows] == ["rent"]

    def test_cashier_window(self, client, cashier_headers, cashier_a, store_a):
        add_expense(store_a, cashier_a, expense_date=today() - timedelta(days=20))
        assert client.get("/api/v1/expenses", headers=cashier_headers).get_json() == []
        old = (today() - timedelta(days=20)).isoformat()
        assert client.get(f"/api/v1/expenses?date={old}", headers=cashier_headers).status_code == 403


class TestExpenseApproval:

    def test_manager_cannot_approve(self, client, manager_headers, cashier_a, store_a):
        expense = add_expense(store_a, cashier_a)
        resp = client.patch(
            f"/api/v1/expenses/{expense.id}/approval",
            json={"approval_status": "approved"},
            headers=manager_headers,
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize("decision", ["approved", "rejected"])
    def test_accounts_decides(self, client, accounts_headers, cashier_a, store_a, decision):
        expense = add_expense(store_a, cashier_a)
        resp = client.patch(
            f"/api/v1/expenses/{expense.id}/approval",
            json={"approval_status": decision},
            headers=accounts_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["expense"]["approval_status"] == decision

    def test_missing_expense(self, client, accounts_headers):
        resp = client.patch(
            "/api/v1/expenses/12345/approval",
            json={"approval_status": "approved"},
            headers=accounts_headers,
        )
        assert resp.status_code == 404

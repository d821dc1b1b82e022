"""
Sales entry tests.

Verifies:
- Entries are recorded against the caller's effective store
- Store scoping and the cashier history window on reads
- Approval is restricted to accounts_incharge / super_user
- Edit rules per role and hand bill conversion
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from dsr.extensions import db
from dsr.models import AuditLog, Sale
from dsr.time_utils import today

from conftest import auth_headers, issue_token, make_user


def add_sale(store, user, *, sale_date=None, tender_type="cash", amount="100.00", status="pending"):
    sale = Sale(
        store_id=store.id,
        sale_date=sale_date or today(),
        tender_type=tender_type,
        amount=Decimal(amount),
        entered_by=user.id,
        approval_status=status,
        custom_data={},
    )
    db.session.add(sale)
    db.session.commit()
    return sale


class TestCreateSale:

    def test_cashier_records_against_own_store(self, client, cashier_headers, cashier_a, store_a, store_b):
        resp = client.post(
            "/api/v1/sales",
            json={
                "sale_date": today().isoformat(),
                "tender_type": "cash",
                "amount": "1250.50",
                "store_id": store_b.id,
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["store_id"] == store_a.id
        assert sale["entered_by"] == cashier_a.id
        assert sale["amount"] == 1250.5
        assert sale["approval_status"] == "pending"

    def test_writes_audit_row(self, client, cashier_headers):
        client.post(
            "/api/v1/sales",
            json={"sale_date": today().isoformat(), "tender_type": "upi", "amount": 10},
            headers=cashier_headers,
        )
        log = db.session.query(AuditLog).filter_by(table_name="sales", action_type="INSERT").one()
        assert log.new_values["tender_type"] == "upi"

    def test_privileged_user_must_name_store(self, client, super_headers, store_a):
        body = {"sale_date": today().isoformat(), "tender_type": "cash", "amount": 5}
        assert client.post("/api/v1/sales", json=body, headers=super_headers).status_code == 400

        body["store_id"] = store_a.id
        resp = client.post("/api/v1/sales", json=body, headers=super_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["store_id"] == store_a.id

    @pytest.mark.parametrize("body", [
        {"tender_type": "cash", "amount": 5},
        {"sale_date": "2025-13-40", "tender_type": "cash", "amount": 5},
        {"sale_date": "2025-01-01", "tender_type": "barter", "amount": 5},
        {"sale_date": "2025-01-01", "tender_type": "cash", "amount": 0},
        {"sale_date": "2025-01-01", "tender_type": "cash", "amount": -3},
        {"sale_date": "2025-01-01", "tender_type": "cash", "amount": "ten"},
    ])
    def test_invalid_input(self, client, cashier_headers, body):
        resp = client.post("/api/v1/sales", json=body, headers=cashier_headers)
        assert resp.status_code == 400

    def test_requires_auth(self, client):
        resp = client.post("/api/v1/sales", json={})
        assert resp.status_code == 401


class TestBatch:

    def test_skips_empty_tenders(self, client, cashier_headers, store_a):
        resp = client.post(
            "/api/v1/sales/batch",
            json={
                "sale_date": today().isoformat(),
                "tenders": [
                    {"tender_type": "cash", "amount": 500},
                    {"tender_type": "upi", "amount": 0},
                    {"tender_type": "credit_card", "amount": "250.25"},
                    {"tender_type": "rrn"},
                ],
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        sales = resp.get_json()["sales"]
        assert [s["tender_type"] for s in sales] == ["cash", "credit_card"]
        assert all(s["store_id"] == store_a.id for s in sales)

    def test_nothing_valid(self, client, cashier_headers):
        resp = client.post(
            "/api/v1/sales/batch",
            json={"sale_date": today().isoformat(), "tenders": [{"tender_type": "cash", "amount": 0}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400

    def test_missing_tenders(self, client, cashier_headers):
        resp = client.post("/api/v1/sales/batch", json={"sale_date": today().isoformat()}, headers=cashier_headers)
        assert resp.status_code == 400


class TestListSales:

    def test_cashier_only_sees_own_store(self, client, cashier_headers, cashier_a, cashier_b, store_a, store_b):
        add_sale(store_a, cashier_a)
        add_sale(store_b, cashier_b)
        resp = client.get(f"/api/v1/sales?store_id={store_b.id}", headers=cashier_headers)
        assert resp.status_code == 200
        rows = resp.get_json()
        assert len(rows) == 1
        assert rows[0]["store_id"] == store_a.id
        assert rows[0]["store"]["store_code"] == "STA"
        assert rows[0]["entered_by_user"]["first_name"] == "Cashier_A"

    def test_privileged_sees_all_stores_by_default(self, client, accounts_headers, cashier_a, cashier_b, store_a, store_b):
        add_sale(store_a, cashier_a)
        add_sale(store_b, cashier_b)
        assert len(client.get("/api/v1/sales", headers=accounts_headers).get_json()) == 2
        filtered = client.get(f"/api/v1/sales?store_id={store_b.id}", headers=accounts_headers).get_json()
        assert [s["store_id"] for s in filtered] == [store_b.id]

    def test_cashier_window_hides_old_entries(self, client, cashier_headers, cashier_a, store_a):
        add_sale(store_a, cashier_a, sale_date=today() - timedelta(days=30))
        recent = add_sale(store_a, cashier_a, sale_date=today() - timedelta(days=2))
        rows = client.get("/api/v1/sales", headers=cashier_headers).get_json()
        assert [r["id"] for r in rows] == [recent.id]

    def test_cashier_explicit_old_date_forbidden(self, client, cashier_headers):
        old = (today() - timedelta(days=30)).isoformat()
        assert client.get(f"/api/v1/sales?date={old}", headers=cashier_headers).status_code == 403
        assert client.get(f"/api/v1/sales?from={old}", headers=cashier_headers).status_code == 403

    def test_manager_sees_old_entries(self, client, manager_headers, cashier_a, store_a):
        add_sale(store_a, cashier_a, sale_date=today() - timedelta(days=30))
        assert len(client.get("/api/v1/sales", headers=manager_headers).get_json()) == 1

    def test_filters(self, client, accounts_headers, cashier_a, store_a):
        add_sale(store_a, cashier_a, tender_type="cash")
        add_sale(store_a, cashier_a, tender_type="upi", status="approved")
        rows = client.get("/api/v1/sales?tender_type=upi", headers=accounts_headers).get_json()
        assert [r["tender_type"] for r in rows] == ["upi"]
        rows = client.get("/api/v1/sales?status=pending", headers=accounts_headers).get_json()
        assert [r["tender_type"] for r in rows] == ["cash"]

    def test_pagination(self, client, accounts_headers, cashier_a, store_a):
        for _ in range(3):
            add_sale(store_a, cashier_a)
        rows = client.get("/api/v1/sales?page=2&limit=2", headers=accounts_headers).get_json()
        assert len(rows) == 1
        assert client.get("/api/v1/sales?page=0", headers=accounts_headers).status_code == 400

    def test_unassigned_cashier(self, app, client):
        loner = make_user("loner", "cashier")
        headers = auth_headers(issue_token(app, loner))
        assert client.get("/api/v1/sales", headers=headers).status_code == 400


class TestApproval:

    @pytest.mark.parametrize("headers_fixture", ["cashier_headers", "manager_headers"])
    def test_store_roles_cannot_approve(self, request, client, cashier_a, store_a, headers_fixture):
        sale = add_sale(store_a, cashier_a)
        headers = request.getfixturevalue(headers_fixture)
        resp = client.patch(
            f"/api/v1/sales/{sale.id}/approval",
            json={"approval_status": "approved"},
            headers=headers,
        )
        assert resp.status_code == 403

    def test_accounts_approves(self, client, accounts_headers, accounts_user, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a)
        resp = client.patch(
            f"/api/v1/sales/{sale.id}/approval",
            json={"approval_status": "approved", "approval_notes": "checked"},
            headers=accounts_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()["sale"]
        assert body["approval_status"] == "approved"
        assert body["approved_by"] == accounts_user.id
        assert body["approved_at"] is not None

    def test_invalid_status(self, client, super_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a)
        resp = client.patch(
            f"/api/v1/sales/{sale.id}/approval",
            json={"approval_status": "pending"},
            headers=super_headers,
        )
        assert resp.status_code == 400

    def test_missing_sale(self, client, super_headers):
        resp = client.patch("/api/v1/sales/9999/approval", json={"approval_status": "approved"}, headers=super_headers)
        assert resp.status_code == 404


class TestUpdateSale:

    def test_cashier_edits_own_pending(self, client, cashier_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a)
        resp = client.patch(f"/api/v1/sales/{sale.id}", json={"amount": "75.5"}, headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["amount"] == 75.5

    def test_cashier_cannot_edit_colleague_entry(self, client, cashier_headers, store_a):
        colleague = make_user("colleague", "cashier", store_id=store_a.id)
        sale = add_sale(store_a, colleague)
        resp = client.patch(f"/api/v1/sales/{sale.id}", json={"amount": 1}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cashier_cannot_edit_approved(self, client, cashier_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a, status="approved")
        resp = client.patch(f"/api/v1/sales/{sale.id}", json={"amount": 1}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_other_store_is_not_found(self, client, cashier_b_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a)
        resp = client.patch(f"/api/v1/sales/{sale.id}", json={"amount": 1}, headers=cashier_b_headers)
        assert resp.status_code == 404

    def test_manager_edits_pending_in_store(self, client, manager_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a)
        resp = client.patch(f"/api/v1/sales/{sale.id}", json={"notes": "fixed"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["notes"] == "fixed"

    def test_privileged_edits_approved(self, client, super_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a, status="approved")
        resp = client.patch(f"/api/v1/sales/{sale.id}", json={"tender_type": "upi"}, headers=super_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["approval_status"] == "approved"

    def test_immutable_fields_ignored(self, client, cashier_headers, cashier_a, store_a, store_b):
        sale = add_sale(store_a, cashier_a)
        resp = client.patch(
            f"/api/v1/sales/{sale.id}",
            json={"store_id": store_b.id, "approval_status": "approved", "entered_by": 999},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        db.session.refresh(sale)
        assert sale.store_id == store_a.id
        assert sale.approval_status == "pending"


class TestConvertHandBill:

    def test_converts_once(self, client, manager_headers, manager_a, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a, tender_type="hand_bill")
        url = f"/api/v1/sales/{sale.id}/convert-handbill"
        resp = client.patch(url, json={"system_transaction_reference": "SYS-001"}, headers=manager_headers)
        assert resp.status_code == 200
        body = resp.get_json()["sale"]
        assert body["is_hand_bill_converted"] is True
        assert body["transaction_reference"] == "SYS-001"
        assert body["converted_by"] == manager_a.id

        again = client.patch(url, json={"system_transaction_reference": "SYS-002"}, headers=manager_headers)
        assert again.status_code == 400

    def test_only_hand_bills(self, client, manager_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a, tender_type="cash")
        resp = client.patch(
            f"/api/v1/sales/{sale.id}/convert-handbill",
            json={"system_transaction_reference": "SYS-001"},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_reference_required(self, client, manager_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a, tender_type="hand_bill")
        resp = client.patch(f"/api/v1/sales/{sale.id}/convert-handbill", json={}, headers=manager_headers)
        assert resp.status_code == 400

    def test_cashier_cannot_convert(self, client, cashier_headers, cashier_a, store_a):
        sale = add_sale(store_a, cashier_a, tender_type="hand_bill")
        resp = client.patch(
            f"/api/v1/sales/{sale.id}/convert-handbill",
            json={"system_transaction_reference": "SYS-001"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403


class TestSummary:

    def test_groups_by_tender(self, client, manager_headers, cashier_a, cashier_b, store_a, store_b):
        add_sale(store_a, cashier_a, tender_type="cash", amount="100.10")
        add_sale(store_a, cashier_a, tender_type="cash", amount="200.20")
        add_sale(store_a, cashier_a, tender_type="upi", amount="50.00")
        add_sale(store_b, cashier_b, tender_type="cash", amount="999.00")

        rows = client.get("/api/v1/sales/summary", headers=manager_headers).get_json()
        by_tender = {r["tender_type"]: r for r in rows}
        assert by_tender["cash"]["total_amount"] == pytest.approx(300.30)
        assert by_tender["cash"]["count"] == 2
        assert by_tender["upi"]["count"] == 1

"""
Gift voucher tests.

Verifies:
- Generated numbers follow PREFIX + YYMMDD + daily sequence
- Redemption is all-or-nothing and only for active, unexpired vouchers
- Lazy expiry on reads and the expire-vouchers sweep
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from dsr.extensions import db
from dsr.models import GiftVoucher
from dsr.services import voucher_service
from dsr.time_utils import today


def add_voucher(store, number, *, amount="500.00", balance=None, status="active", expiry_date=None, phone=None):
    voucher = GiftVoucher(
        voucher_number=number,
        original_amount=Decimal(amount),
        current_balance=Decimal(balance if balance is not None else amount),
        issued_date=today() - timedelta(days=10),
        expiry_date=expiry_date or today() + timedelta(days=30),
        status=status,
        voucher_type="legacy",
        store_id=store.id,
        customer_phone=phone,
    )
    db.session.add(voucher)
    db.session.commit()
    return voucher


def redemption_state(voucher):
    return (
        voucher.status,
        voucher.current_balance,
        voucher.redeemed_by,
        voucher.redeemed_at,
        voucher.redeemed_store_id,
    )


class TestCreateVoucher:

    def test_generated_number_and_default_expiry(self, client, manager_headers, store_a):
        resp = client.post(
            "/api/v1/vouchers",
            json={"original_amount": 1000, "customer_name": "Asha", "customer_phone": "9876543210"},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        voucher = resp.get_json()["voucher"]
        prefix = "PJ" + today().strftime("%y%m%d")
        assert voucher["voucher_number"] == prefix + "0001"
        assert voucher["voucher_type"] == "system_generated"
        assert voucher["current_balance"] == voucher["original_amount"] == 1000.0
        assert voucher["store_id"] == store_a.id
        assert voucher["expiry_date"] == (today() + timedelta(days=365)).isoformat()

    def test_sequence_increments(self, client, manager_headers):
        first = client.post("/api/v1/vouchers", json={"original_amount": 10}, headers=manager_headers)
        second = client.post("/api/v1/vouchers", json={"original_amount": 20}, headers=manager_headers)
        assert first.get_json()["voucher"]["voucher_number"].endswith("0001")
        assert second.get_json()["voucher"]["voucher_number"].endswith("0002")

    def test_manual_number(self, client, manager_headers, store_a):
        resp = client.post(
            "/api/v1/vouchers",
            json={"original_amount": 300, "voucher_number": "old-777"},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        voucher = resp.get_json()["voucher"]
        assert voucher["voucher_number"] == "OLD-777"
        assert voucher["voucher_type"] == "manual"

    def test_duplicate_manual_number(self, client, manager_headers, store_a):
        add_voucher(store_a, "DUP-1")
        resp = client.post(
            "/api/v1/vouchers",
            json={"original_amount": 300, "voucher_number": "DUP-1"},
            headers=manager_headers,
        )
        assert resp.status_code == 409

    def test_expiry_before_issue(self, client, manager_headers):
        resp = client.post(
            "/api/v1/vouchers",
            json={"original_amount": 300, "expiry_date": (today() - timedelta(days=1)).isoformat()},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_amount_required(self, client, manager_headers):
        assert client.post("/api/v1/vouchers", json={}, headers=manager_headers).status_code == 400

    def test_cashier_cannot_issue(self, client, cashier_headers):
        resp = client.post("/api/v1/vouchers", json={"original_amount": 10}, headers=cashier_headers)
        assert resp.status_code == 403


class TestRedeem:

    def test_redeem_active(self, client, cashier_b_headers, cashier_b, store_a, store_b):
        add_voucher(store_a, "GV-1")
        resp = client.patch("/api/v1/vouchers/GV-1/redeem", headers=cashier_b_headers)
        assert resp.status_code == 200
        voucher = resp.get_json()["voucher"]
        assert voucher["status"] == "redeemed"
        assert voucher["current_balance"] == 0.0
        assert voucher["redeemed_by"] == cashier_b.id
        assert voucher["redeemed_store_id"] == store_b.id
        assert voucher["redeemed_at"] is not None

    def test_second_redeem_fails(self, client, cashier_headers, cashier_b_headers, cashier_a, store_a):
        voucher = add_voucher(store_a, "GV-2")
        assert client.patch("/api/v1/vouchers/GV-2/redeem", headers=cashier_headers).status_code == 200
        db.session.refresh(voucher)
        first = redemption_state(voucher)

        resp = client.patch("/api/v1/vouchers/GV-2/redeem", headers=cashier_b_headers)
        assert resp.status_code == 400
        assert "redeemed" in resp.get_json()["error"]
        db.session.refresh(voucher)
        assert redemption_state(voucher) == first
        assert voucher.redeemed_by == cashier_a.id
        assert voucher.redeemed_store_id == store_a.id

    def test_partially_used(self, client, cashier_headers, store_a):
        voucher = add_voucher(store_a, "GV-3", amount="500.00", balance="200.00")
        before = redemption_state(voucher)
        resp = client.patch("/api/v1/vouchers/GV-3/redeem", headers=cashier_headers)
        assert resp.status_code == 400
        assert "partially used" in resp.get_json()["error"]
        db.session.refresh(voucher)
        assert redemption_state(voucher) == before
        assert before == ("active", Decimal("200.00"), None, None, None)

    def test_expired(self, client, cashier_headers, store_a):
        voucher = add_voucher(store_a, "GV-4", expiry_date=today() - timedelta(days=1))
        resp = client.patch("/api/v1/vouchers/GV-4/redeem", headers=cashier_headers)
        assert resp.status_code == 400
        db.session.refresh(voucher)
        assert voucher.status == "expired"

    def test_cancelled(self, client, cashier_headers, store_a):
        add_voucher(store_a, "GV-5", status="cancelled")
        resp = client.patch("/api/v1/vouchers/GV-5/redeem", headers=cashier_headers)
        assert resp.status_code == 400
        assert "cancelled" in resp.get_json()["error"]

    def test_missing(self, client, cashier_headers):
        assert client.patch("/api/v1/vouchers/NOPE/redeem", headers=cashier_headers).status_code == 404


class TestCancel:

    def test_manager_cancels(self, client, manager_headers, manager_a, store_a):
        add_voucher(store_a, "GV-6")
        resp = client.patch("/api/v1/vouchers/GV-6/cancel", json={"reason": "Customer refund"}, headers=manager_headers)
        assert resp.status_code == 200
        voucher = resp.get_json()["voucher"]
        assert voucher["status"] == "cancelled"
        assert voucher["cancelled_by"] == manager_a.id
        assert voucher["cancellation_reason"] == "Customer refund"

    def test_only_active(self, client, manager_headers, store_a):
        add_voucher(store_a, "GV-7", status="redeemed", balance="0")
        resp = client.patch("/api/v1/vouchers/GV-7/cancel", headers=manager_headers)
        assert resp.status_code == 400

    def test_cashier_cannot_cancel(self, client, cashier_headers, store_a):
        add_voucher(store_a, "GV-8")
        assert client.patch("/api/v1/vouchers/GV-8/cancel", headers=cashier_headers).status_code == 403


class TestLookupAndList:

    def test_lookup_any_store(self, client, cashier_b_headers, store_a):
        add_voucher(store_a, "GV-9")
        resp = client.get("/api/v1/vouchers/gv-9", headers=cashier_b_headers)
        assert resp.status_code == 200
        assert resp.get_json()["voucher_number"] == "GV-9"

    def test_lookup_expires_lazily(self, client, cashier_headers, store_a):
        add_voucher(store_a, "GV-10", expiry_date=today() - timedelta(days=3))
        resp = client.get("/api/v1/vouchers/GV-10", headers=cashier_headers)
        assert resp.get_json()["status"] == "expired"

    def test_list_scoped_and_filtered(self, client, cashier_headers, store_a, store_b):
        add_voucher(store_a, "GV-11", phone="111")
        add_voucher(store_a, "GV-12", phone="222")
        add_voucher(store_b, "GV-13", phone="111")
        rows = client.get("/api/v1/vouchers?customer_phone=111", headers=cashier_headers).get_json()
        assert [r["voucher_number"] for r in rows] == ["GV-11"]

    def test_list_status_filter_sees_expiry(self, client, manager_headers, store_a):
        add_voucher(store_a, "GV-14", expiry_date=today() - timedelta(days=1))
        add_voucher(store_a, "GV-15")
        rows = client.get("/api/v1/vouchers?status=expired", headers=manager_headers).get_json()
        assert [r["voucher_number"] for r in rows] == ["GV-14"]

    def test_invalid_status(self, client, manager_headers):
        assert client.get("/api/v1/vouchers?status=lost", headers=manager_headers).status_code == 400


class TestExpireSweep:

    def test_expire_all(self, store_a):
        stale = add_voucher(store_a, "GV-16", expiry_date=today() - timedelta(days=1))
        fresh = add_voucher(store_a, "GV-17")
        assert voucher_service.expire_all() == 1
        db.session.refresh(stale)
        db.session.refresh(fresh)
        assert stale.status == "expired"
        assert fresh.status == "active"

    def test_cli(self, app, store_a):
        add_voucher(store_a, "GV-18", expiry_date=today() - timedelta(days=1))
        result = app.test_cli_runner().invoke(args=["dsr", "expire-vouchers"])
        assert result.exit_code == 0
        assert "Expired 1 voucher(s)." in result.output


@pytest.mark.parametrize("issued,expected", [
    ((2025, 10, 19), "PJ251019"),
    ((2026, 1, 2), "PJ260102"),
])
def test_day_prefix(issued, expected):
    from datetime import date
    assert voucher_service.voucher_day_prefix("PJ", date(*issued)) == expected

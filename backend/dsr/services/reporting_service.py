# Overview: Read-only aggregations for reports and the dashboard.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Expense, Sale, Store, PRIVILEGED_ROLES
from ..time_utils import to_iso_date
from .sales_service import summarize_by_tender
from .store_access_service import check_history_window, read_scope_store_id


ZERO = Decimal("0")


def _history_days() -> int:
    return current_app.config["CASHIER_HISTORY_DAYS"]


def daily_sales(context, *, report_date, store_id: int | None = None) -> dict:
    """
    Sales of one day grouped by tender type, with approval-status counts.

    {date, store_id, summary: {tender: {total, count, approved, pending, rejected}}, grand_total}
    """
    check_history_window(context, report_date, days=_history_days())
    scope = read_scope_store_id(context, store_id)

    query = db.session.query(Sale.tender_type, Sale.amount, Sale.approval_status).filter(
        Sale.sale_date == report_date
    )
    if scope is not None:
        query = query.filter(Sale.store_id == scope)

    summary: dict[str, dict] = {}
    grand_total = ZERO
    for tender_type, amount, status in query.order_by(Sale.id.asc()).all():
        entry = summary.setdefault(
            tender_type,
            {"total": ZERO, "count": 0, "approved": 0, "pending": 0, "rejected": 0},
        )
        amount = Decimal(str(amount))
        entry["total"] += amount
        entry["count"] += 1
        if status in entry:
            entry[status] += 1
        grand_total += amount

    for entry in summary.values():
        entry["total"] = float(entry["total"])

    return {
        "date": to_iso_date(report_date),
        "store_id": scope,
        "summary": summary,
        "grand_total": float(grand_total),
    }


def cash_reconciliation(context, *, report_date, store_id: int | None = None) -> dict:
    """
    Cash position of one store for one day.

    Rejected entries are ignored. Status:
    - no_store: caller named no store and has no effective store
    - no_data: no cash sales and no petty-cash expenses that day
    - over_limit: petty-cash spend exceeds the store's limit
    - balanced: otherwise
    """
    if context.role in PRIVILEGED_ROLES:
        target = store_id if store_id is not None else context.store_id
    else:
        target = read_scope_store_id(context, store_id)

    result = {
        "date": to_iso_date(report_date),
        "store_id": target,
        "cash_sales_total": 0.0,
        "cash_sales_count": 0,
        "petty_cash_expenses_total": 0.0,
        "net_cash": 0.0,
        "petty_cash_limit": None,
        "status": "no_store",
    }
    if target is None:
        return result

    store = db.session.get(Store, target)
    if store is None:
        return result

    cash_total, cash_count = (
        db.session.query(db.func.coalesce(db.func.sum(Sale.amount), 0), db.func.count(Sale.id))
        .filter(
            Sale.store_id == target,
            Sale.sale_date == report_date,
            Sale.tender_type == "cash",
            Sale.approval_status != "rejected",
        )
        .one()
    )
    (petty_total,) = (
        db.session.query(db.func.coalesce(db.func.sum(Expense.amount), 0))
        .filter(
            Expense.store_id == target,
            Expense.expense_date == report_date,
            Expense.payment_method == "petty_cash",
            Expense.approval_status != "rejected",
        )
        .one()
    )
    cash_total = Decimal(str(cash_total))
    petty_total = Decimal(str(petty_total))
    limit = Decimal(str(store.petty_cash_limit))

    if cash_count == 0 and petty_total == ZERO:
        status = "no_data"
    elif petty_total > limit:
        status = "over_limit"
    else:
        status = "balanced"

    result.update(
        cash_sales_total=float(cash_total),
        cash_sales_count=int(cash_count),
        petty_cash_expenses_total=float(petty_total),
        net_cash=float(cash_total - petty_total),
        petty_cash_limit=float(limit),
        status=status,
    )
    return result


def pending_approvals(context) -> int:
    query = db.session.query(db.func.count(Sale.id)).filter(Sale.approval_status == "pending")
    scope = read_scope_store_id(context, None)
    if scope is not None:
        query = query.filter(Sale.store_id == scope)
    return int(query.scalar() or 0)


def dashboard(context, *, report_date) -> dict:
    check_history_window(context, report_date, days=_history_days())
    scope = read_scope_store_id(context, None)

    query = db.session.query(Sale.tender_type, Sale.amount).filter(Sale.sale_date == report_date)
    if scope is not None:
        query = query.filter(Sale.store_id == scope)
    sales_summary = summarize_by_tender(query.order_by(Sale.id.asc()).all())
    today_total = float(sum(Decimal(str(item["total_amount"])) for item in sales_summary))

    stats = {
        "todayTotal": today_total,
        "pendingApprovals": 0,
        "cashTransactionCount": 0,
        "netCash": 0.0,
        "cashStatus": "unknown",
    }
    if context.role != "cashier":
        recon = cash_reconciliation(context, report_date=report_date)
        stats.update(
            pendingApprovals=pending_approvals(context),
            cashTransactionCount=recon["cash_sales_count"],
            netCash=recon["net_cash"],
            cashStatus=recon["status"],
        )

    return {"salesSummary": sales_summary, "dashboardStats": stats}

# Overview: Service-layer operations for daily sales entries; encapsulates business logic and database work.

"""
Daily sales entries.

Each Sale row is one tender line (cash, card, UPI, hand bill...) of a store's
day. Entries start pending and are approved or rejected by accounts staff.

Store scope:
- cashier / store_manager: pinned to their effective store
- accounts_incharge / super_user: any store; all stores when unfiltered
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import Sale, APPROVAL_STATUSES, PRIVILEGED_ROLES, TENDER_TYPES
from ..time_utils import today, utcnow
from ..validation import (
    check_choice,
    clean_text,
    is_positive_amount,
    parse_amount,
    parse_date_field,
    parse_optional_id,
    require_fields,
)
from . import audit_service
from .persistence import commit_or_raise
from .store_access_service import (
    check_history_window,
    ensure_in_scope,
    read_scope_store_id,
    write_store_id,
)


# Fields a PATCH /sales/<id> may change
EDITABLE_FIELDS = (
    "sale_date",
    "tender_type",
    "amount",
    "transaction_reference",
    "customer_reference",
    "notes",
    "custom_data",
)

APPROVAL_DECISIONS = ("approved", "rejected")


def _history_days() -> int:
    return current_app.config["CASHIER_HISTORY_DAYS"]


def list_sales(
    context,
    *,
    sale_date=None,
    date_from=None,
    date_to=None,
    tender_type: str | None = None,
    approval_status: str | None = None,
    store_id: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Sale]:
    scope = read_scope_store_id(context, store_id)

    query = db.session.query(Sale)
    if scope is not None:
        query = query.filter(Sale.store_id == scope)

    days = _history_days()
    floor = check_history_window(context, sale_date or date_from, days=days)
    if sale_date is not None:
        query = query.filter(Sale.sale_date == sale_date)
    else:
        if date_from is not None:
            query = query.filter(Sale.sale_date >= date_from)
        if date_to is not None:
            query = query.filter(Sale.sale_date <= date_to)
    if floor is not None:
        query = query.filter(Sale.sale_date >= floor)

    if tender_type:
        query = query.filter(Sale.tender_type == check_choice(tender_type, TENDER_TYPES, "tender_type"))
    if approval_status:
        query = query.filter(
            Sale.approval_status == check_choice(approval_status, APPROVAL_STATUSES, "approval_status")
        )

    return (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def _build_sale(*, store_id: int, sale_date, tender: dict, entered_by: int) -> Sale:
    return Sale(
        store_id=store_id,
        sale_date=sale_date,
        tender_type=check_choice(tender.get("tender_type"), TENDER_TYPES, "tender_type"),
        amount=parse_amount(tender.get("amount")),
        transaction_reference=clean_text(tender.get("transaction_reference"), "transaction_reference"),
        customer_reference=clean_text(tender.get("customer_reference"), "customer_reference"),
        notes=clean_text(tender.get("notes"), "notes", max_length=2000),
        custom_data=tender.get("custom_data") if isinstance(tender.get("custom_data"), dict) else {},
        entered_by=entered_by,
        approval_status="pending",
    )


def create_sale(context, data: dict) -> Sale:
    require_fields(
        data,
        ("sale_date", "tender_type", "amount"),
        "Sale date, tender type, and amount are required",
    )
    sale_date = parse_date_field(data.get("sale_date"), "sale_date")
    store_id = write_store_id(context, parse_optional_id(data.get("store_id"), "store_id"))

    sale = _build_sale(store_id=store_id, sale_date=sale_date, tender=data, entered_by=context.user_id)
    db.session.add(sale)
    db.session.flush()

    audit_service.record(
        table_name="sales",
        action_type="INSERT",
        record_id=sale.id,
        user_id=context.user_id,
        store_id=store_id,
        new_values=sale.to_dict(),
    )
    commit_or_raise()
    return sale


def create_sales_batch(context, data: dict) -> list[Sale]:
    """
    Record several tenders for one day in a single commit.

    Tenders without a type or with a missing/non-positive amount are skipped.
    """
    sale_date = data.get("sale_date")
    tenders = data.get("tenders")
    if not sale_date or not isinstance(tenders, list):
        raise ValidationError("Sale date and tenders array are required")
    sale_date = parse_date_field(sale_date, "sale_date")

    valid = [
        t for t in tenders
        if isinstance(t, dict) and t.get("tender_type") and is_positive_amount(t.get("amount"))
    ]
    if not valid:
        raise ValidationError("At least one tender with amount > 0 is required")

    store_id = write_store_id(context, parse_optional_id(data.get("store_id"), "store_id"))

    sales = [
        _build_sale(store_id=store_id, sale_date=sale_date, tender=t, entered_by=context.user_id)
        for t in valid
    ]
    db.session.add_all(sales)
    db.session.flush()

    for sale in sales:
        audit_service.record(
            table_name="sales",
            action_type="INSERT",
            record_id=sale.id,
            user_id=context.user_id,
            store_id=store_id,
            new_values=sale.to_dict(),
        )
    commit_or_raise()
    return sales


def get_sale(context, sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFound("Sale not found")
    ensure_in_scope(context, sale.store_id)
    return sale


def update_sale(context, sale_id: int, data: dict) -> Sale:
    """
    Edit a sales entry.

    - cashier: own entries only, while pending
    - store_manager: pending entries of their store
    - accounts_incharge / super_user: any entry
    """
    sale = get_sale(context, sale_id)

    if context.role not in PRIVILEGED_ROLES:
        if sale.approval_status != "pending":
            raise Forbidden(f"Sales entry is already {sale.approval_status} and can no longer be edited")
        if context.role == "cashier" and sale.entered_by != context.user_id:
            raise Forbidden("You can only edit your own sales entries")

    changes = {k: data[k] for k in EDITABLE_FIELDS if k in data}
    if not changes:
        raise ValidationError(f"Nothing to update. Allowed fields: {', '.join(EDITABLE_FIELDS)}")

    before = sale.to_dict()
    if "sale_date" in changes:
        sale.sale_date = parse_date_field(changes["sale_date"], "sale_date")
    if "tender_type" in changes:
        sale.tender_type = check_choice(changes["tender_type"], TENDER_TYPES, "tender_type")
    if "amount" in changes:
        sale.amount = parse_amount(changes["amount"])
    for field in ("transaction_reference", "customer_reference"):
        if field in changes:
            setattr(sale, field, clean_text(changes[field], field))
    if "notes" in changes:
        sale.notes = clean_text(changes["notes"], "notes", max_length=2000)
    if "custom_data" in changes:
        if not isinstance(changes["custom_data"], dict):
            raise ValidationError("custom_data must be an object")
        sale.custom_data = changes["custom_data"]

    audit_service.record(
        table_name="sales",
        action_type="UPDATE",
        record_id=sale.id,
        user_id=context.user_id,
        store_id=sale.store_id,
        old_values=before,
        new_values=sale.to_dict(),
    )
    commit_or_raise()
    return sale


def set_approval(context, sale_id: int, approval_status: str, approval_notes: str | None = None) -> Sale:
    """Approve or reject an entry. Route restricts callers to accounts_incharge / super_user."""
    if approval_status not in APPROVAL_DECISIONS:
        raise ValidationError("Invalid approval status")
    sale = get_sale(context, sale_id)

    before = {"approval_status": sale.approval_status, "approved_by": sale.approved_by}
    sale.approval_status = approval_status
    sale.approved_by = context.user_id
    sale.approved_at = utcnow()
    sale.approval_notes = clean_text(approval_notes, "approval_notes", max_length=2000)

    audit_service.record(
        table_name="sales",
        action_type="UPDATE",
        record_id=sale.id,
        user_id=context.user_id,
        store_id=sale.store_id,
        old_values=before,
        new_values={"approval_status": approval_status, "approved_by": context.user_id},
    )
    commit_or_raise()
    return sale


def convert_hand_bill(context, sale_id: int, system_transaction_reference: str | None) -> Sale:
    reference = clean_text(system_transaction_reference, "system_transaction_reference")
    if not reference:
        raise ValidationError("system_transaction_reference is required")

    sale = get_sale(context, sale_id)
    if sale.tender_type != "hand_bill":
        raise ValidationError("Only hand bill entries can be converted")
    if sale.is_hand_bill_converted:
        raise ValidationError("Hand bill has already been converted")

    before = {"transaction_reference": sale.transaction_reference, "is_hand_bill_converted": False}
    now = utcnow()
    result = db.session.execute(
        update(Sale)
        .where(Sale.id == sale.id, Sale.is_hand_bill_converted.is_(False))
        .values(
            is_hand_bill_converted=True,
            converted_at=now,
            converted_by=context.user_id,
            transaction_reference=reference,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ValidationError("Hand bill has already been converted")

    audit_service.record(
        table_name="sales",
        action_type="UPDATE",
        record_id=sale.id,
        user_id=context.user_id,
        store_id=sale.store_id,
        old_values=before,
        new_values={"transaction_reference": reference, "is_hand_bill_converted": True},
    )
    commit_or_raise()
    db.session.refresh(sale)
    return sale


def summarize_by_tender(rows) -> list[dict]:
    """Group (tender_type, amount) rows: [{tender_type, total_amount, count}]."""
    grouped: "OrderedDict[str, dict]" = OrderedDict()
    for tender_type, amount in rows:
        entry = grouped.setdefault(
            tender_type,
            {"tender_type": tender_type, "total_amount": Decimal("0"), "count": 0},
        )
        entry["total_amount"] += Decimal(str(amount))
        entry["count"] += 1
    return [
        {**entry, "total_amount": float(entry["total_amount"])}
        for entry in grouped.values()
    ]


def sales_summary(context, *, sale_date=None, store_id: int | None = None) -> list[dict]:
    sale_date = sale_date or today()
    check_history_window(context, sale_date, days=_history_days())
    scope = read_scope_store_id(context, store_id)

    query = db.session.query(Sale.tender_type, Sale.amount).filter(Sale.sale_date == sale_date)
    if scope is not None:
        query = query.filter(Sale.store_id == scope)
    return summarize_by_tender(query.order_by(Sale.id.asc()).all())

# Overview: Service-layer operations for store expenses; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Expense, APPROVAL_STATUSES, EXPENSE_PAYMENT_METHODS
from ..time_utils import utcnow
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
from .sales_service import APPROVAL_DECISIONS
from .store_access_service import (
    check_history_window,
    ensure_in_scope,
    read_scope_store_id,
    write_store_id,
)


def list_expenses(
    context,
    *,
    expense_date=None,
    category: str | None = None,
    approval_status: str | None = None,
    store_id: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Expense]:
    scope = read_scope_store_id(context, store_id)
    floor = check_history_window(context, expense_date, days=current_app.config["CASHIER_HISTORY_DAYS"])

    query = db.session.query(Expense)
    if scope is not None:
        query = query.filter(Expense.store_id == scope)
    if expense_date is not None:
        query = query.filter(Expense.expense_date == expense_date)
    if floor is not None:
        query = query.filter(Expense.expense_date >= floor)
    if category:
        query = query.filter(Expense.category == category)
    if approval_status:
        query = query.filter(
            Expense.approval_status == check_choice(approval_status, APPROVAL_STATUSES, "approval_status")
        )

    return (
        query.order_by(Expense.created_at.desc(), Expense.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def _build_expense(*, store_id: int, expense_date, item: dict, requested_by: int) -> Expense:
    category = clean_text(item.get("category"), "category", max_length=64)
    description = clean_text(item.get("description"), "description", max_length=2000)
    if not category or not description:
        raise ValidationError("Category and description are required")
    return Expense(
        store_id=store_id,
        expense_date=expense_date,
        category=category,
        description=description,
        amount=parse_amount(item.get("amount")),
        voucher_number=clean_text(item.get("voucher_number"), "voucher_number", max_length=64),
        payment_method=check_choice(
            item.get("payment_method") or "petty_cash", EXPENSE_PAYMENT_METHODS, "payment_method"
        ),
        expense_owner=clean_text(item.get("expense_owner"), "expense_owner", max_length=120),
        requested_by=requested_by,
        approval_status="pending",
    )


def _record_inserts(context, expenses: list[Expense]) -> None:
    for expense in expenses:
        audit_service.record(
            table_name="expenses",
            action_type="INSERT",
            record_id=expense.id,
            user_id=context.user_id,
            store_id=expense.store_id,
            new_values=expense.to_dict(),
        )


def create_expense(context, data: dict) -> Expense:
    require_fields(
        data,
        ("expense_date", "category", "description", "amount"),
        "Required fields missing",
    )
    expense_date = parse_date_field(data.get("expense_date"), "expense_date")
    store_id = write_store_id(context, parse_optional_id(data.get("store_id"), "store_id"))

    expense = _build_expense(store_id=store_id, expense_date=expense_date, item=data, requested_by=context.user_id)
    db.session.add(expense)
    db.session.flush()
    _record_inserts(context, [expense])
    commit_or_raise()
    return expense


def create_expenses_batch(context, data: dict) -> list[Expense]:
    """Items with a missing or non-positive amount are skipped, like sales batches."""
    expense_date = data.get("expense_date")
    items = data.get("expenses")
    if not expense_date or not isinstance(items, list):
        raise ValidationError("Expense date and expenses array are required")
    expense_date = parse_date_field(expense_date, "expense_date")

    valid = [i for i in items if isinstance(i, dict) and is_positive_amount(i.get("amount"))]
    if not valid:
        raise ValidationError("At least one expense with amount > 0 is required")

    store_id = write_store_id(context, parse_optional_id(data.get("store_id"), "store_id"))
    expenses = [
        _build_expense(store_id=store_id, expense_date=expense_date, item=i, requested_by=context.user_id)
        for i in valid
    ]
    db.session.add_all(expenses)
    db.session.flush()
    _record_inserts(context, expenses)
    commit_or_raise()
    return expenses


def set_approval(context, expense_id: int, approval_status: str, approval_notes: str | None = None) -> Expense:
    if approval_status not in APPROVAL_DECISIONS:
        raise ValidationError("Invalid approval status")
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFound("Expense not found")
    ensure_in_scope(context, expense.store_id)

    before = {"approval_status": expense.approval_status, "approved_by": expense.approved_by}
    expense.approval_status = approval_status
    expense.approved_by = context.user_id
    expense.approved_at = utcnow()
    expense.approval_notes = clean_text(approval_notes, "approval_notes", max_length=2000)

    audit_service.record(
        table_name="expenses",
        action_type="UPDATE",
        record_id=expense.id,
        user_id=context.user_id,
        store_id=expense.store_id,
        old_values=before,
        new_values={"approval_status": approval_status, "approved_by": context.user_id},
    )
    commit_or_raise()
    return expense

# Overview: Service-layer operations for supplier damage reports.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import DamageReport
from ..time_utils import today
from ..validation import (
    clean_text,
    parse_amount,
    parse_bool,
    parse_date_field,
    parse_optional_id,
    parse_positive_int,
)
from . import audit_service
from .persistence import commit_or_raise
from .store_access_service import read_scope_store_id, write_store_id


# Free-text columns a caller may set, with their length limits
TEXT_FIELDS = {
    "dc_number": 64,
    "item_code": 64,
    "brand_name": 120,
    "damage_source": 64,
    "damage_category": 64,
    "action_taken": 2000,
    "credit_note_number": 64,
}


def list_reports(context, *, store_id: int | None = None, offset: int = 0, limit: int = 50) -> list[DamageReport]:
    scope = read_scope_store_id(context, store_id)
    query = db.session.query(DamageReport)
    if scope is not None:
        query = query.filter(DamageReport.store_id == scope)
    return (
        query.order_by(DamageReport.created_at.desc(), DamageReport.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def create_report(context, data: dict) -> DamageReport:
    """
    Record damaged stock received from a supplier.

    Unknown keys in the body are ignored; store, reporter and status are
    always set server-side.
    """
    supplier_name = clean_text(data.get("supplier_name"), "supplier_name", max_length=120)
    item_name = clean_text(data.get("item_name"), "item_name")
    if not supplier_name or not item_name or data.get("quantity") in (None, ""):
        raise ValidationError("Supplier name, item name and quantity are required")
    quantity = parse_positive_int(data.get("quantity"), "quantity")

    store_id = write_store_id(context, parse_optional_id(data.get("store_id"), "store_id"))
    report_date = parse_date_field(data.get("report_date"), "report_date", required=False) or today()

    report = DamageReport(
        store_id=store_id,
        report_date=report_date,
        supplier_name=supplier_name,
        item_name=item_name,
        quantity=quantity,
        reported_by=context.user_id,
        status="reported",
    )
    for field, max_length in TEXT_FIELDS.items():
        setattr(report, field, clean_text(data.get(field), field, max_length=max_length))
    if data.get("replacement_from_distributor") is not None:
        report.replacement_from_distributor = parse_bool(
            data["replacement_from_distributor"], "replacement_from_distributor"
        )
    if data.get("estimated_value") not in (None, ""):
        report.estimated_value = parse_amount(data["estimated_value"], "estimated_value")

    db.session.add(report)
    db.session.flush()
    audit_service.record(
        table_name="damage_reports",
        action_type="INSERT",
        record_id=report.id,
        user_id=context.user_id,
        store_id=store_id,
        new_values=report.to_dict(),
    )
    commit_or_raise()
    return report

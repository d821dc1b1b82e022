# Overview: Service-layer operations for gift vouchers; encapsulates business logic and database work.

"""
Gift vouchers.

Voucher numbers are PREFIX + YYMMDD + a 4-digit sequence per issue day, e.g.
PJ2510190001. A voucher supplied with its own number is recorded as manual.

Lifecycle: active -> redeemed | cancelled | expired. Expiry is applied
lazily whenever vouchers are read, and by the expire-vouchers CLI sweep.

Redeem and cancel are single conditional UPDATEs on (status, balance), so of
two concurrent requests for the same voucher exactly one succeeds.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..errors import Conflict, NotFound, ValidationError
from ..extensions import db
from ..models import GiftVoucher, Customer, VOUCHER_STATUSES
from ..time_utils import today, utcnow
from ..validation import clean_text, parse_amount, parse_date_field, parse_optional_id
from . import audit_service
from .persistence import commit_or_raise
from .store_access_service import read_scope_store_id, write_store_id


SEQUENCE_WIDTH = 4


def voucher_day_prefix(prefix: str, issued: date) -> str:
    return f"{prefix}{issued.strftime('%y%m%d')}"


def next_voucher_number(prefix: str, issued: date) -> str:
    day_prefix = voucher_day_prefix(prefix, issued)
    rows = (
        db.session.query(GiftVoucher.voucher_number)
        .filter(GiftVoucher.voucher_number.like(f"{day_prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in rows:
        suffix = number[len(day_prefix):]
        if len(suffix) == SEQUENCE_WIDTH and suffix.isdigit():
            highest = max(highest, int(suffix))
    if highest >= 10 ** SEQUENCE_WIDTH - 1:
        raise Conflict("Daily voucher sequence exhausted")
    return f"{day_prefix}{highest + 1:0{SEQUENCE_WIDTH}d}"


def is_expired(voucher: GiftVoucher, *, on: date | None = None) -> bool:
    on = on or today()
    return voucher.expiry_date is not None and voucher.expiry_date < on


def expire_vouchers(vouchers) -> int:
    """Mark listed active vouchers past their expiry date as expired. Caller commits."""
    count = 0
    for voucher in vouchers:
        if voucher.status == "active" and is_expired(voucher):
            voucher.status = "expired"
            count += 1
    return count


def expire_all(*, on: date | None = None) -> int:
    """Sweep every active voucher whose expiry date has passed."""
    on = on or today()
    result = db.session.execute(
        update(GiftVoucher)
        .where(
            GiftVoucher.status == "active",
            GiftVoucher.expiry_date.isnot(None),
            GiftVoucher.expiry_date < on,
        )
        .values(status="expired", updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount or 0


def list_vouchers(
    context,
    *,
    status: str | None = None,
    customer_phone: str | None = None,
    store_id: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[GiftVoucher]:
    if status and status not in VOUCHER_STATUSES:
        raise ValidationError(f"Invalid status. Allowed values: {', '.join(VOUCHER_STATUSES)}")
    scope = read_scope_store_id(context, store_id)

    # Expire first so a status filter sees the current state
    stale = db.session.query(GiftVoucher).filter(
        GiftVoucher.status == "active",
        GiftVoucher.expiry_date.isnot(None),
        GiftVoucher.expiry_date < today(),
    )
    if scope is not None:
        stale = stale.filter(GiftVoucher.store_id == scope)
    if expire_vouchers(stale.all()):
        db.session.commit()

    query = db.session.query(GiftVoucher)
    if scope is not None:
        query = query.filter(GiftVoucher.store_id == scope)
    if status:
        query = query.filter(GiftVoucher.status == status)
    if customer_phone:
        query = query.filter(GiftVoucher.customer_phone == customer_phone.strip())
    return (
        query.order_by(GiftVoucher.created_at.desc(), GiftVoucher.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def _find(voucher_number: str) -> GiftVoucher:
    number = (voucher_number or "").strip().upper()
    voucher = db.session.query(GiftVoucher).filter(GiftVoucher.voucher_number == number).first()
    if not voucher:
        raise NotFound("Voucher not found")
    return voucher


def get_voucher(voucher_number: str) -> GiftVoucher:
    """Chain-wide lookup; vouchers are redeemable at any store."""
    voucher = _find(voucher_number)
    if expire_vouchers([voucher]):
        db.session.commit()
    return voucher


def create_voucher(context, data: dict) -> GiftVoucher:
    if data.get("original_amount") in (None, ""):
        raise ValidationError("Original amount required")
    amount = parse_amount(data.get("original_amount"), "original_amount")
    store_id = write_store_id(context, parse_optional_id(data.get("store_id"), "store_id"))

    issued = today()
    expiry = parse_date_field(data.get("expiry_date"), "expiry_date", required=False)
    if expiry is None:
        expiry = issued + timedelta(days=current_app.config["VOUCHER_VALIDITY_DAYS"])
    if expiry < issued:
        raise ValidationError("Expiry date cannot be before issue date")

    customer_id = parse_optional_id(data.get("customer_id"), "customer_id")
    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise ValidationError("Invalid customer_id provided")

    manual_number = clean_text(data.get("voucher_number"), "voucher_number", max_length=32)
    if manual_number:
        number = manual_number.upper()
        voucher_type = "manual"
        if db.session.query(GiftVoucher.id).filter(GiftVoucher.voucher_number == number).first():
            raise Conflict("Voucher number already exists")
    else:
        number = next_voucher_number(current_app.config["VOUCHER_PREFIX"], issued)
        voucher_type = "system_generated"

    voucher = GiftVoucher(
        voucher_number=number,
        original_amount=amount,
        current_balance=amount,
        issued_date=issued,
        expiry_date=expiry,
        status="active",
        voucher_type=voucher_type,
        store_id=store_id,
        created_by=context.user_id,
        customer_id=customer_id,
        customer_name=clean_text(data.get("customer_name"), "customer_name", max_length=120),
        customer_phone=clean_text(data.get("customer_phone"), "customer_phone", max_length=32),
        notes=clean_text(data.get("notes"), "notes", max_length=2000),
    )
    db.session.add(voucher)
    db.session.flush()

    audit_service.record(
        table_name="gift_vouchers",
        action_type="INSERT",
        record_id=voucher.id,
        user_id=context.user_id,
        store_id=store_id,
        new_values=voucher.to_dict(),
    )
    commit_or_raise(conflict_message="Voucher number already exists")
    return voucher


def _check_redeemable(voucher: GiftVoucher) -> None:
    if voucher.status == "active" and is_expired(voucher):
        voucher.status = "expired"
        db.session.commit()
        raise ValidationError("Voucher has expired")
    if voucher.status != "active":
        raise ValidationError(f"Voucher is {voucher.status}")
    if Decimal(voucher.current_balance) != Decimal(voucher.original_amount):
        raise ValidationError("Voucher has been partially used and cannot be redeemed")


def redeem_voucher(context, voucher_number: str) -> GiftVoucher:
    voucher = _find(voucher_number)
    _check_redeemable(voucher)

    now = utcnow()
    result = db.session.execute(
        update(GiftVoucher)
        .where(
            GiftVoucher.id == voucher.id,
            GiftVoucher.status == "active",
            GiftVoucher.current_balance == GiftVoucher.original_amount,
        )
        .values(
            status="redeemed",
            current_balance=0,
            redeemed_at=now,
            redeemed_by=context.user_id,
            redeemed_store_id=context.store_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(voucher)
        raise ValidationError(f"Voucher is {voucher.status}")

    audit_service.record(
        table_name="gift_vouchers",
        action_type="UPDATE",
        record_id=voucher.id,
        user_id=context.user_id,
        store_id=context.store_id,
        old_values={"status": "active", "current_balance": voucher.original_amount},
        new_values={"status": "redeemed", "current_balance": 0},
    )
    commit_or_raise()
    db.session.refresh(voucher)
    return voucher


def cancel_voucher(context, voucher_number: str, reason: str | None = None) -> GiftVoucher:
    voucher = _find(voucher_number)
    if voucher.status == "active" and is_expired(voucher):
        voucher.status = "expired"
        db.session.commit()
    if voucher.status != "active":
        raise ValidationError(f"Only active vouchers can be cancelled (voucher is {voucher.status})")

    reason = clean_text(reason, "reason", max_length=2000)
    now = utcnow()
    result = db.session.execute(
        update(GiftVoucher)
        .where(GiftVoucher.id == voucher.id, GiftVoucher.status == "active")
        .values(
            status="cancelled",
            cancelled_at=now,
            cancelled_by=context.user_id,
            cancellation_reason=reason,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(voucher)
        raise ValidationError(f"Only active vouchers can be cancelled (voucher is {voucher.status})")

    audit_service.record(
        table_name="gift_vouchers",
        action_type="UPDATE",
        record_id=voucher.id,
        user_id=context.user_id,
        store_id=voucher.store_id,
        old_values={"status": "active"},
        new_values={"status": "cancelled", "cancellation_reason": reason},
    )
    commit_or_raise()
    db.session.refresh(voucher)
    return voucher

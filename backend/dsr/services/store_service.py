# Overview: Service-layer operations for stores; encapsulates business logic and database work.

from __future__ import annotations

import re
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import Conflict, NotFound, ValidationError
from ..extensions import db
from ..models import Store, User
from ..validation import clean_text, parse_amount, parse_bool, parse_optional_id
from . import audit_service
from .persistence import commit_or_raise


STORE_CODE_PATTERN = re.compile(r"^[A-Z0-9]{2,10}$")
MANAGER_ROLES = ("store_manager", "accounts_incharge", "super_user")
DAILY_DEADLINE_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


def list_stores(*, include_inactive: bool = True) -> list[Store]:
    query = db.session.query(Store)
    if not include_inactive:
        query = query.filter(Store.is_active.is_(True))
    return query.order_by(Store.store_name.asc()).all()


def get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFound("Store not found")
    return store


def _validate_manager(manager_id) -> int | None:
    manager_id = parse_optional_id(manager_id, "manager_id")
    if manager_id is None:
        return None
    manager = db.session.get(User, manager_id)
    if not manager:
        raise ValidationError("Invalid manager ID")
    if manager.role not in MANAGER_ROLES:
        raise ValidationError("Manager must have manager-level role or above")
    return manager_id


def _deadline_time(value) -> str:
    if not isinstance(value, str) or not DAILY_DEADLINE_PATTERN.match(value.strip()):
        raise ValidationError("daily_deadline_time must be HH:MM or HH:MM:SS")
    return value.strip()


def _timezone(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("timezone must be an IANA zone name such as Asia/Kolkata")
    name = value.strip()
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}")
    return name


def _sync_manager_assignment(store: Store, previous_manager_id: int | None) -> None:
    """
    Keep users.store_id in line with stores.manager_id.

    The previous manager loses the direct assignment when replaced; the new
    manager gets it and is released from any other store it managed, so a
    manager always resolves to exactly one store.
    """
    if previous_manager_id and previous_manager_id != store.manager_id:
        previous = db.session.get(User, previous_manager_id)
        if previous and previous.store_id == store.id:
            previous.store_id = None
    if store.manager_id:
        other_stores = (
            db.session.query(Store)
            .filter(Store.manager_id == store.manager_id, Store.id != store.id)
            .all()
        )
        for other in other_stores:
            other.manager_id = None
        manager = db.session.get(User, store.manager_id)
        if manager:
            manager.store_id = store.id


def create_store(context, data: dict) -> Store:
    code = str(data.get("store_code") or "").strip().upper()
    name = clean_text(data.get("store_name"), "store_name", max_length=120)
    if not code or not name:
        raise ValidationError("Store code and name are required")
    if not STORE_CODE_PATTERN.match(code):
        raise ValidationError("Store code must be 2-10 uppercase letters/numbers only")

    if db.session.query(Store.id).filter(Store.store_code == code).first():
        raise Conflict("Store code already exists")

    manager_id = _validate_manager(data.get("manager_id"))
    petty_cash_limit = data.get("petty_cash_limit")
    daily_deadline_time = data.get("daily_deadline_time")
    daily_deadline_time = "12:00:00" if daily_deadline_time in (None, "") else _deadline_time(daily_deadline_time)
    timezone = data.get("timezone")
    timezone = "Asia/Kolkata" if timezone in (None, "") else _timezone(timezone)

    store = Store(
        store_code=code,
        store_name=name,
        address=clean_text(data.get("address"), "address", max_length=1000),
        phone=clean_text(data.get("phone"), "phone", max_length=32),
        manager_id=manager_id,
        petty_cash_limit=parse_amount(petty_cash_limit, "petty_cash_limit") if petty_cash_limit is not None else Decimal("5000.00"),
        timezone=timezone,
        daily_deadline_time=daily_deadline_time,
        is_active=True,
        configuration={},
    )
    db.session.add(store)
    db.session.flush()
    _sync_manager_assignment(store, None)

    audit_service.record(
        table_name="stores",
        action_type="INSERT",
        record_id=store.id,
        user_id=context.user_id,
        store_id=store.id,
        new_values=store.to_dict(),
    )
    commit_or_raise(conflict_message="Store code already exists")
    return store


def update_store(context, store_id: int, data: dict) -> Store:
    store = get_store(store_id)
    before = store.to_dict()

    name = clean_text(data.get("store_name"), "store_name", max_length=120)
    if not name:
        raise ValidationError("Store name is required")

    # Validate everything before touching the row
    changes = {"store_name": name}
    if "address" in data:
        changes["address"] = clean_text(data.get("address"), "address", max_length=1000)
    if "phone" in data:
        changes["phone"] = clean_text(data.get("phone"), "phone", max_length=32)
    if "manager_id" in data:
        changes["manager_id"] = _validate_manager(data.get("manager_id"))
    if data.get("petty_cash_limit") is not None:
        changes["petty_cash_limit"] = parse_amount(data["petty_cash_limit"], "petty_cash_limit")
    if data.get("timezone") not in (None, ""):
        changes["timezone"] = _timezone(data["timezone"])
    if data.get("daily_deadline_time") not in (None, ""):
        changes["daily_deadline_time"] = _deadline_time(data["daily_deadline_time"])
    if "is_active" in data:
        changes["is_active"] = parse_bool(data["is_active"], "is_active")

    previous_manager_id = store.manager_id
    for field, value in changes.items():
        setattr(store, field, value)

    _sync_manager_assignment(store, previous_manager_id)

    audit_service.record(
        table_name="stores",
        action_type="UPDATE",
        record_id=store.id,
        user_id=context.user_id,
        store_id=store.id,
        old_values=before,
        new_values=store.to_dict(),
    )
    commit_or_raise()
    return store


def update_configuration(context, store_id: int, configuration) -> Store:
    if not isinstance(configuration, dict):
        raise ValidationError("configuration must be an object")
    store = get_store(store_id)
    before = {"configuration": store.configuration}
    store.configuration = configuration

    audit_service.record(
        table_name="stores",
        action_type="UPDATE",
        record_id=store.id,
        user_id=context.user_id,
        store_id=store.id,
        old_values=before,
        new_values={"configuration": configuration},
    )
    commit_or_raise()
    return store

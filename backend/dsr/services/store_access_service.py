from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import Store, PRIVILEGED_ROLES
from ..time_utils import days_ago


def resolve_effective_store_id(user, find_managed_store: Callable[[int], Optional[int]]) -> int | None:
    """
    Store the user acts on behalf of.

    Store managers (and any user without a direct assignment) are looked up by
    the stores.manager_id back-reference; a managed store wins over the user's
    own store_id. Everyone else keeps their direct store_id.

    Pure apart from the injected lookup, so login and the auth middleware share
    exactly one rule.
    """
    if user.role == "store_manager" or user.store_id is None:
        managed = find_managed_store(user.id)
        if managed is not None:
            return managed
    return user.store_id


def managed_store_id(user_id: int) -> int | None:
    """Id of the store whose manager_id points to user_id, if any."""
    row = (
        db.session.query(Store.id)
        .filter(Store.manager_id == user_id)
        .order_by(Store.id.asc())
        .first()
    )
    return row[0] if row else None


def effective_store_id_for(user) -> int | None:
    return resolve_effective_store_id(user, managed_store_id)


def user_can_access_store(*, user_id: int, role: str, effective_store_id: int | None, target_store_id: int) -> bool:
    """
    Store-ownership check used by require_store_access.

    Privileged roles reach every store; others only their effective store or
    a store they manage.
    """
    if role in PRIVILEGED_ROLES:
        return True
    if effective_store_id is not None and effective_store_id == target_store_id:
        return True
    return (
        db.session.query(Store.id)
        .filter(Store.id == target_store_id, Store.manager_id == user_id)
        .first()
        is not None
    )


# ---------------------------------------------------------------------------
# Handler scoping
# ---------------------------------------------------------------------------

def read_scope_store_id(context, requested_store_id: int | None) -> int | None:
    """
    Store filter for list/summary queries.

    Cashiers and store managers are pinned to their effective store whatever
    they ask for. Privileged roles get the requested store, or None meaning
    every store.
    """
    if context.role in PRIVILEGED_ROLES:
        return requested_store_id
    if context.store_id is None:
        raise ValidationError("User not assigned to store. Contact admin.")
    return context.store_id


def write_store_id(context, requested_store_id: int | None) -> int:
    """
    Store a new entry is recorded against.

    Users with an effective store always write to it. Privileged users without
    one must name an existing store explicitly.
    """
    if context.store_id is not None and (
        context.role not in PRIVILEGED_ROLES or requested_store_id is None
    ):
        return context.store_id

    if context.role in PRIVILEGED_ROLES:
        if requested_store_id is None:
            raise ValidationError("Please specify store_id in request body for multi-store access")
        if db.session.get(Store, requested_store_id) is None:
            raise ValidationError("Invalid store_id provided")
        return requested_store_id

    raise ValidationError("User not assigned to store. Contact admin to assign store.")


def history_floor(context, *, days: int, reference: date | None = None) -> date | None:
    """Earliest date a caller may read; None when unrestricted."""
    if context.role == "cashier":
        return days_ago(days, reference=reference)
    return None


def check_history_window(context, requested: date | None, *, days: int) -> date | None:
    """
    Validate an explicit date filter against the cashier look-back window and
    return the floor to apply.
    """
    floor = history_floor(context, days=days)
    if floor is not None and requested is not None and requested < floor:
        raise Forbidden(f"Cashiers can only view entries from the last {days} days")
    return floor


def ensure_in_scope(context, store_id: int) -> None:
    """Raise NotFound when a record belongs to a store outside the caller's scope."""
    if context.role in PRIVILEGED_ROLES:
        return
    if context.store_id is None or context.store_id != store_id:
        raise NotFound()

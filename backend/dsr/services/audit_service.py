# Overview: Append-only audit trail for state-changing operations.

"""
Audit logging.

Every create/update performed through the services adds an AuditLog row in
the same session, so it is committed (or rolled back) together with the
change it describes. Request metadata (IP, user agent) is picked up from the
active Flask request when there is one.
"""

from __future__ import annotations

from decimal import Decimal
from datetime import date, datetime

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog


def _jsonable(values: dict | None) -> dict | None:
    if values is None:
        return None
    cleaned = {}
    for key, value in values.items():
        if key == "password_hash":
            continue
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        cleaned[key] = value
    return cleaned


def record(
    *,
    table_name: str,
    action_type: str,
    record_id=None,
    user_id: int | None = None,
    store_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> AuditLog:
    """Stage an audit row on the current session (caller commits)."""
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = (request.headers.get("User-Agent") or "")[:512] or None

    entry = AuditLog(
        table_name=table_name,
        record_id=str(record_id) if record_id is not None else None,
        action_type=action_type,
        old_values=_jsonable(old_values),
        new_values=_jsonable(new_values),
        user_id=user_id,
        store_id=store_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    return entry


def list_audit_logs(
    *,
    table_name: str | None = None,
    action_type: str | None = None,
    store_id: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    if action_type:
        query = query.filter(AuditLog.action_type == action_type.upper())
    if store_id is not None:
        query = query.filter(AuditLog.store_id == store_id)
    return (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

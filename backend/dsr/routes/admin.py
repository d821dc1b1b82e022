# Overview: Flask API routes for system settings and the audit trail.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role
from ..errors import ApiError
from ..models import PRIVILEGED_ROLES
from ..services import audit_service, settings_service
from ..validation import json_body, parse_pagination


admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")

ADMIN_READERS = ("store_manager", "accounts_incharge", "super_user")


@admin_bp.get("/settings")
@require_auth
@require_role(*ADMIN_READERS)
def list_settings():
    try:
        settings = settings_service.list_settings(module_name=request.args.get("module_name") or None)
        return jsonify([s.to_dict() for s in settings]), 200
    except Exception:
        current_app.logger.exception("List settings failed")
        return jsonify({"error": "Failed to fetch system settings"}), 500


@admin_bp.patch("/settings/<int:setting_id>")
@require_auth
@require_role("super_user")
def update_setting(setting_id: int):
    try:
        setting = settings_service.update_setting(g.auth, setting_id, json_body())
        return jsonify({"message": "Setting updated successfully", "setting": setting.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update setting failed")
        return jsonify({"error": "Failed to update setting"}), 500


@admin_bp.get("/audit-logs")
@require_auth
@require_role(*ADMIN_READERS)
def list_audit_logs():
    """Store managers only see rows recorded against their own store."""
    try:
        offset, limit = parse_pagination(request.args)
        store_id = None if g.auth.role in PRIVILEGED_ROLES else g.store_id
        if g.auth.role not in PRIVILEGED_ROLES and store_id is None:
            return jsonify([]), 200
        logs = audit_service.list_audit_logs(
            table_name=request.args.get("table_name") or None,
            action_type=request.args.get("action_type") or None,
            store_id=store_id,
            offset=offset,
            limit=limit,
        )
        return jsonify([log.to_dict() for log in logs]), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("List audit logs failed")
        return jsonify({"error": "Failed to fetch audit logs"}), 500

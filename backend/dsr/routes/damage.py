from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth
from ..errors import ApiError
from ..services import damage_service
from ..validation import json_body, parse_optional_id, parse_pagination


damage_bp = Blueprint("damage", __name__, url_prefix="/api/v1/damage")


@damage_bp.get("")
@require_auth
def list_damage_reports():
    try:
        offset, limit = parse_pagination(request.args)
        reports = damage_service.list_reports(
            g.auth,
            store_id=parse_optional_id(request.args.get("store_id"), "store_id"),
            offset=offset,
            limit=limit,
        )
        return jsonify([r.to_dict() for r in reports]), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("List damage reports failed")
        return jsonify({"error": "Failed to fetch damage reports"}), 500


@damage_bp.post("")
@require_auth
def create_damage_report():
    try:
        report = damage_service.create_report(g.auth, json_body())
        return jsonify({"message": "Damage report created successfully", "report": report.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create damage report failed")
        return jsonify({"error": "Failed to create damage report"}), 500

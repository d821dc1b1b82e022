# Overview: Flask API routes for gift vouchers; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role
from ..errors import ApiError
from ..services import voucher_service
from ..validation import json_body, parse_optional_id, parse_pagination


vouchers_bp = Blueprint("vouchers", __name__, url_prefix="/api/v1/vouchers")

VOUCHER_MANAGERS = ("store_manager", "accounts_incharge", "super_user")


@vouchers_bp.get("")
@require_auth
def list_vouchers_route():
    try:
        args = request.args
        offset, limit = parse_pagination(args)
        vouchers = voucher_service.list_vouchers(
            g.auth,
            status=args.get("status") or None,
            customer_phone=args.get("customer_phone") or None,
            store_id=parse_optional_id(args.get("store_id"), "store_id"),
            offset=offset,
            limit=limit,
        )
        return jsonify([v.to_dict() for v in vouchers]), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("List vouchers failed")
        return jsonify({"error": "Failed to fetch vouchers"}), 500


@vouchers_bp.post("")
@require_auth
@require_role(*VOUCHER_MANAGERS)
def create_voucher_route():
    try:
        voucher = voucher_service.create_voucher(g.auth, json_body())
        return jsonify({"message": "Gift voucher created successfully", "voucher": voucher.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create voucher failed")
        return jsonify({"error": "Failed to create gift voucher"}), 500


@vouchers_bp.get("/<voucher_number>")
@require_auth
def get_voucher_route(voucher_number: str):
    try:
        voucher = voucher_service.get_voucher(voucher_number)
        return jsonify(voucher.to_dict()), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Get voucher failed")
        return jsonify({"error": "Failed to fetch voucher"}), 500


@vouchers_bp.patch("/<voucher_number>/redeem")
@require_auth
def redeem_voucher_route(voucher_number: str):
    try:
        voucher = voucher_service.redeem_voucher(g.auth, voucher_number)
        return jsonify({"message": "Voucher redeemed successfully", "voucher": voucher.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Redeem voucher failed")
        return jsonify({"error": "Failed to redeem voucher"}), 500


@vouchers_bp.patch("/<voucher_number>/cancel")
@require_auth
@require_role(*VOUCHER_MANAGERS)
def cancel_voucher_route(voucher_number: str):
    try:
        data = request.get_json(silent=True) or {}
        reason = data.get("reason") if isinstance(data, dict) else None
        voucher = voucher_service.cancel_voucher(g.auth, voucher_number, reason)
        return jsonify({"message": "Voucher cancelled successfully", "voucher": voucher.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Cancel voucher failed")
        return jsonify({"error": "Failed to cancel voucher"}), 500

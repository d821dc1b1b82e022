# Overview: Flask API routes for daily sales entries; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role
from ..errors import ApiError
from ..services import sales_service
from ..validation import json_body, parse_date_field, parse_optional_id, parse_pagination


sales_bp = Blueprint("sales", __name__, url_prefix="/api/v1/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales entries in the caller's store scope.

    Query: date, from, to, tender_type, status, store_id (privileged roles
    only), page, limit. Cashiers are limited to the trailing history window.
    """
    try:
        args = request.args
        offset, limit = parse_pagination(args)
        sales = sales_service.list_sales(
            g.auth,
            sale_date=parse_date_field(args.get("date"), "date", required=False),
            date_from=parse_date_field(args.get("from"), "from", required=False),
            date_to=parse_date_field(args.get("to"), "to", required=False),
            tender_type=args.get("tender_type") or None,
            approval_status=args.get("status") or None,
            store_id=parse_optional_id(args.get("store_id"), "store_id"),
            offset=offset,
            limit=limit,
        )
        return jsonify([s.to_dict(include_related=True) for s in sales]), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("List sales failed")
        return jsonify({"error": "Failed to fetch sales"}), 500


@sales_bp.post("")
@require_auth
def create_sale_route():
    try:
        sale = sales_service.create_sale(g.auth, json_body())
        return jsonify({"message": "Sale created successfully", "sale": sale.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create sale failed")
        return jsonify({"error": "Failed to create sale"}), 500


@sales_bp.post("/batch")
@require_auth
def create_sales_batch_route():
    try:
        sales = sales_service.create_sales_batch(g.auth, json_body())
        return jsonify({
            "message": f"{len(sales)} sales entries created successfully",
            "sales": [s.to_dict() for s in sales],
        }), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create sales batch failed")
        return jsonify({"error": "Failed to create sales"}), 500


@sales_bp.get("/summary")
@require_auth
def sales_summary_route():
    try:
        summary = sales_service.sales_summary(
            g.auth,
            sale_date=parse_date_field(request.args.get("date"), "date", required=False),
            store_id=parse_optional_id(request.args.get("store_id"), "store_id"),
        )
        return jsonify(summary), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Sales summary failed")
        return jsonify({"error": "Failed to fetch sales summary"}), 500


@sales_bp.patch("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    try:
        sale = sales_service.update_sale(g.auth, sale_id, json_body())
        return jsonify({"message": "Sale updated successfully", "sale": sale.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update sale failed")
        return jsonify({"error": "Failed to update sale"}), 500


@sales_bp.patch("/<int:sale_id>/approval")
@require_auth
@require_role("accounts_incharge", "super_user")
def approve_sale_route(sale_id: int):
    try:
        data = json_body()
        sale = sales_service.set_approval(
            g.auth, sale_id, data.get("approval_status"), data.get("approval_notes")
        )
        return jsonify({"message": f"Sale {sale.approval_status} successfully", "sale": sale.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Sale approval failed")
        return jsonify({"error": "Failed to update approval status"}), 500


@sales_bp.patch("/<int:sale_id>/convert-handbill")
@require_auth
@require_role("store_manager", "accounts_incharge", "super_user")
def convert_hand_bill_route(sale_id: int):
    try:
        data = json_body()
        sale = sales_service.convert_hand_bill(g.auth, sale_id, data.get("system_transaction_reference"))
        return jsonify({"message": "Hand bill converted successfully", "sale": sale.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Hand bill conversion failed")
        return jsonify({"error": "Failed to convert hand bill"}), 500

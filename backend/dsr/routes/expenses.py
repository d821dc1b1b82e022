# Overview: Flask API routes for store expenses; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role
from ..errors import ApiError
from ..services import expense_service
from ..validation import json_body, parse_date_field, parse_optional_id, parse_pagination


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/v1/expenses")


@expenses_bp.get("")
@require_auth
def list_expenses_route():
    try:
        args = request.args
        offset, limit = parse_pagination(args)
        expenses = expense_service.list_expenses(
            g.auth,
            expense_date=parse_date_field(args.get("date"), "date", required=False),
            category=args.get("category") or None,
            approval_status=args.get("status") or None,
            store_id=parse_optional_id(args.get("store_id"), "store_id"),
            offset=offset,
            limit=limit,
        )
        return jsonify([e.to_dict(include_related=True) for e in expenses]), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("List expenses failed")
        return jsonify({"error": "Failed to fetch expenses"}), 500


@expenses_bp.post("")
@require_auth
def create_expense_route():
    try:
        expense = expense_service.create_expense(g.auth, json_body())
        return jsonify({"message": "Expense created successfully", "expense": expense.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create expense failed")
        return jsonify({"error": "Failed to create expense"}), 500


@expenses_bp.post("/batch")
@require_auth
def create_expenses_batch_route():
    try:
        expenses = expense_service.create_expenses_batch(g.auth, json_body())
        return jsonify({
            "message": f"{len(expenses)} expenses created successfully",
            "expenses": [e.to_dict() for e in expenses],
        }), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create expenses batch failed")
        return jsonify({"error": "Failed to create expenses"}), 500


@expenses_bp.patch("/<int:expense_id>/approval")
@require_auth
@require_role("accounts_incharge", "super_user")
def approve_expense_route(expense_id: int):
    try:
        data = json_body()
        expense = expense_service.set_approval(
            g.auth, expense_id, data.get("approval_status"), data.get("approval_notes")
        )
        return jsonify({
            "message": f"Expense {expense.approval_status} successfully",
            "expense": expense.to_dict(),
        }), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Expense approval failed")
        return jsonify({"error": "Failed to update approval status"}), 500

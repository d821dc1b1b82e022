# Overview: Flask API routes for reports and the dashboard; read-only aggregations.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role
from ..errors import ApiError
from ..services import reporting_service
from ..time_utils import today
from ..validation import parse_date_field, parse_optional_id


reports_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")
dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


def _report_date():
    return parse_date_field(request.args.get("date"), "date", required=False) or today()


@reports_bp.get("/daily-sales")
@require_auth
def daily_sales_report():
    try:
        report = reporting_service.daily_sales(
            g.auth,
            report_date=_report_date(),
            store_id=parse_optional_id(request.args.get("store_id"), "store_id"),
        )
        return jsonify(report), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Daily sales report failed")
        return jsonify({"error": "Failed to generate daily sales report"}), 500


@reports_bp.get("/cash-reconciliation")
@require_auth
@require_role("store_manager", "accounts_incharge", "super_user")
def cash_reconciliation_report():
    try:
        report_date = _report_date()
        reconciliation = reporting_service.cash_reconciliation(
            g.auth,
            report_date=report_date,
            store_id=parse_optional_id(request.args.get("store_id"), "store_id"),
        )
        return jsonify({"date": report_date.isoformat(), "reconciliation": reconciliation}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Cash reconciliation failed")
        return jsonify({"error": "Failed to generate cash reconciliation"}), 500


@dashboard_bp.get("")
@require_auth
def dashboard():
    """Consolidated dashboard: sales summary plus headline stats."""
    try:
        return jsonify(reporting_service.dashboard(g.auth, report_date=_report_date())), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Dashboard failed")
        return jsonify({"error": "Failed to load dashboard data"}), 500

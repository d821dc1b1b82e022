# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, current_app, g

from ..decorators import require_auth, require_role, require_store_access
from ..errors import ApiError
from ..services import store_service
from ..validation import json_body


stores_bp = Blueprint("stores", __name__, url_prefix="/api/v1/stores")


@stores_bp.get("")
@require_auth
@require_role("super_user", "accounts_incharge")
def list_stores():
    try:
        stores = store_service.list_stores()
        return jsonify([store.to_dict() for store in stores]), 200
    except Exception:
        current_app.logger.exception("List stores failed")
        return jsonify({"error": "Failed to fetch stores"}), 500


@stores_bp.post("")
@require_auth
@require_role("super_user")
def create_store():
    try:
        store = store_service.create_store(g.auth, json_body())
        return jsonify({"message": "Store created successfully", "store": store.to_dict()}), 201
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Create store failed")
        return jsonify({"error": "Failed to create store"}), 500


@stores_bp.get("/current")
@require_auth
def current_store():
    """The caller's effective store, or null when they have none."""
    if g.store_id is None:
        return jsonify({"store": None}), 200
    try:
        store = store_service.get_store(g.store_id)
        return jsonify({"store": store.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Get current store failed")
        return jsonify({"error": "Failed to fetch store"}), 500


@stores_bp.get("/<int:store_id>")
@require_auth
@require_store_access
def get_store(store_id: int):
    try:
        store = store_service.get_store(store_id)
        return jsonify(store.to_dict()), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Get store failed")
        return jsonify({"error": "Failed to fetch store"}), 500


@stores_bp.patch("/<int:store_id>")
@require_auth
@require_role("super_user")
def update_store(store_id: int):
    try:
        store = store_service.update_store(g.auth, store_id, json_body())
        return jsonify({"message": "Store updated successfully", "store": store.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update store failed")
        return jsonify({"error": "Failed to update store"}), 500


@stores_bp.patch("/<int:store_id>/config")
@require_auth
@require_role("store_manager", "super_user")
@require_store_access
def update_store_config(store_id: int):
    try:
        data = json_body()
        store = store_service.update_configuration(g.auth, store_id, data.get("configuration"))
        return jsonify({"message": "Store configuration updated successfully", "store": store.to_dict()}), 200
    except ApiError as e:
        return e.to_response()
    except Exception:
        current_app.logger.exception("Update store config failed")
        return jsonify({"error": "Failed to update store configuration"}), 500

# Overview: Error taxonomy shared by services, decorators and routes.

"""
API error classes.

Services raise these; routes turn them into ``{"error": message}`` JSON with
the class status code. Anything that is not an ApiError is treated as an
unexpected failure and answered with a fixed 500 message so internal detail
(query text, constraint names) never reaches the client.
"""

from __future__ import annotations

from flask import jsonify


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.details)
        return payload

    def to_response(self):
        return jsonify(self.to_dict()), self.status_code


class ValidationError(ApiError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid request"


class AuthRequired(ApiError):
    status_code = 401
    default_message = "No authorization token provided"


class InvalidToken(ApiError):
    status_code = 401
    default_message = "Invalid or expired token"


class UserNotFound(ApiError):
    status_code = 401
    default_message = "User not found in system"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ApiError):
    """409-level uniqueness conflict (duplicate username, voucher number...)."""
    status_code = 409
    default_message = "A record with this data already exists"


class UpstreamFailure(ApiError):
    status_code = 500
    default_message = "Internal server error"


def register_error_handlers(app) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        return exc.to_response()

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "Route not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(exc):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def handle_internal_error(exc):
        app.logger.error("Unhandled server error: %s", exc)
        return jsonify({"error": "Internal server error"}), 500

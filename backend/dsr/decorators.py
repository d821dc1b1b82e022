# Overview: Request authentication and authorization decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import ApiError, AuthRequired, Forbidden, ValidationError
from .services import session_service, store_access_service


def get_token_issuer():
    return current_app.extensions["token_issuer"]


def get_identity_provider():
    return current_app.extensions["identity_provider"]


def extract_bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _is_authenticated() -> bool:
    return getattr(g, "auth", None) is not None


def require_auth(f):
    """
    Require a valid bearer token and establish the authorization context.

    Sets the following Flask g attributes:
    - g.auth: the AuthContext (user, effective store id, verification path)
    - g.current_user: the authenticated User row
    - g.store_id: the effective store id (may be None)

    Returns 401 if:
    - No Authorization header
    - Token is neither a valid local token nor accepted by the identity provider
    - User is missing or deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = extract_bearer_token()
        if not token:
            return AuthRequired().to_response()

        try:
            context = session_service.authenticate_bearer(
                token,
                issuer=get_token_issuer(),
                identity_provider=get_identity_provider(),
            )
        except ApiError as e:
            return e.to_response()
        except Exception:
            current_app.logger.exception("Authentication failed")
            return jsonify({"error": "Authentication failed"}), 500

        g.auth = context
        g.current_user = context.user
        g.store_id = context.store_id

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the authenticated user's role to be one of ``roles``."""
    allowed = set(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "User not authenticated"}), 401

            if g.auth.role not in allowed:
                return Forbidden(
                    "Insufficient permissions",
                    required=sorted(allowed),
                    current=g.auth.role,
                ).to_response()

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def _target_store_id(kwargs) -> str | int | None:
    if kwargs.get("store_id") is not None:
        return kwargs["store_id"]
    body = request.get_json(silent=True)
    if isinstance(body, dict) and body.get("store_id") not in (None, ""):
        return body["store_id"]
    return request.args.get("store_id") or None


def require_store_access(f):
    """
    Require access to the store named by the path, body or query (in that order).

    super_user and accounts_incharge reach every store; everyone else only
    their effective store or a store whose manager_id points to them.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "User not authenticated"}), 401

        raw = _target_store_id(kwargs)
        if raw is None:
            return ValidationError("Store ID required").to_response()
        try:
            target = int(raw)
        except (TypeError, ValueError):
            return ValidationError("Store ID must be an integer").to_response()

        allowed = store_access_service.user_can_access_store(
            user_id=g.auth.user_id,
            role=g.auth.role,
            effective_store_id=g.auth.store_id,
            target_store_id=target,
        )
        if not allowed:
            return Forbidden("Access denied to this store").to_response()

        return f(*args, **kwargs)

    return decorated_function

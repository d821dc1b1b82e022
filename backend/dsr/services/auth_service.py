# Overview: Service-layer operations for accounts and sign-in; encapsulates business logic and database work.

"""
Authentication and account management.

Local accounts (cashiers, mostly) sign in with username + password checked
against a bcrypt hash. External SSO accounts (managers, accounts staff) sign
in through the identity provider and are matched by email; they never have a
password.

Account creation is role-gated:
- super_user creates any account for any store
- store_manager creates cashiers for their own effective store only

Users are never hard-deleted; they are deactivated.
"""

import bcrypt
from flask import current_app

from ..errors import Conflict, Forbidden, NotFound, UserNotFound, ValidationError
from ..extensions import db
from ..models import (
    User,
    Store,
    ROLES,
    AUTHENTICATION_TYPES,
    AUTH_LOCAL,
    AUTH_EXTERNAL_SSO,
)
from ..time_utils import utcnow
from ..validation import check_choice, clean_text, parse_optional_id
from . import audit_service
from .identity_provider import IdentityProviderError
from .persistence import commit_or_raise
from .store_access_service import effective_store_id_for
from .store_service import MANAGER_ROLES


MIN_PASSWORD_LENGTH = 8

# Columns a super_user may change through PATCH /users/<id>
UPDATABLE_USER_FIELDS = ("first_name", "last_name", "email", "role", "store_id")


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str, rounds: int | None = None) -> str:
    """
    Hash password using bcrypt.

    Cost factor comes from BCRYPT_ROUNDS unless passed explicitly.
    """
    validate_password_strength(password)
    if rounds is None:
        rounds = current_app.config["BCRYPT_ROUNDS"]
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for missing input or a malformed hash; bcrypt.checkpw is
    timing-safe.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_login_token(user: User, effective_store_id: int | None) -> str:
    issuer = current_app.extensions["token_issuer"]
    return issuer.issue(
        user.id,
        user.role,
        effective_store_id,
        {"username": user.username, "email": user.email},
    )


def _login_payload(user: User, effective_store_id: int | None) -> dict:
    data = user.to_dict()
    data["store_id"] = effective_store_id
    return data


def authenticate_local(username: str, password: str) -> dict:
    """
    Sign in a local account.

    Inactive accounts, SSO accounts and wrong passwords all fail the same
    way so the response does not reveal which one it was.
    """
    user = (
        db.session.query(User)
        .filter(
            User.username == username,
            User.authentication_type == AUTH_LOCAL,
            User.is_active.is_(True),
        )
        .first()
    )
    if not user or not verify_password(password, user.password_hash):
        raise UserNotFound("Invalid username or password")

    store_id = effective_store_id_for(user)
    token = issue_login_token(user, store_id)

    user.last_login_at = utcnow()
    db.session.commit()

    return {
        "user": _login_payload(user, store_id),
        "token": token,
        "authentication_type": AUTH_LOCAL,
    }


def authenticate_external(provider_token: str) -> dict:
    """
    Exchange an identity-provider token for a local session token.

    The local token carries the freshly resolved effective store, so later
    requests take the fast path in require_auth.
    """
    provider = current_app.extensions["identity_provider"]
    try:
        identity = provider.introspect(provider_token)
    except IdentityProviderError as exc:
        current_app.logger.info("External login rejected: %s", exc)
        raise UserNotFound("Invalid Google token") from exc

    user = (
        db.session.query(User)
        .filter(
            db.func.lower(User.email) == identity.email,
            User.authentication_type == AUTH_EXTERNAL_SSO,
            User.is_active.is_(True),
        )
        .first()
    )
    if not user:
        raise UserNotFound("User not found in system. Contact administrator.")

    domain = (current_app.config.get("ALLOWED_EMAIL_DOMAIN") or "").lstrip("@").lower()
    if domain and not identity.email.endswith("@" + domain):
        raise Forbidden(f"Only @{domain} email addresses are allowed")

    store_id = effective_store_id_for(user)
    token = issue_login_token(user, store_id)

    user.last_login_at = utcnow()
    if identity.subject:
        user.external_subject_id = identity.subject
    db.session.commit()

    return {
        "user": _login_payload(user, store_id),
        "token": token,
        "authentication_type": AUTH_EXTERNAL_SSO,
    }


def _get_store_or_error(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise ValidationError("Invalid store_id provided")
    return store


def create_user(context, data: dict) -> User:
    """
    Create an account on behalf of the authenticated caller.

    Store managers may only create cashiers, always in their own effective
    store. Super users may create any role for any store.
    """
    username = clean_text(data.get("username"), "username", max_length=64)
    first_name = clean_text(data.get("first_name"), "first_name", max_length=80)
    last_name = clean_text(data.get("last_name"), "last_name", max_length=80)
    if not username or not first_name or not last_name:
        raise ValidationError("Username, first name and last name are required")

    email = clean_text(data.get("email"), "email")
    email = email.lower() if email else None
    role = check_choice(data.get("role") or "cashier", ROLES, "role")
    authentication_type = check_choice(
        data.get("authentication_type") or AUTH_LOCAL, AUTHENTICATION_TYPES, "authentication_type"
    )
    store_id = parse_optional_id(data.get("store_id"), "store_id")

    if context.role == "store_manager":
        if role != "cashier":
            raise Forbidden("Store managers can only create cashier accounts")
        if context.store_id is None:
            raise ValidationError("User not assigned to store. Contact admin.")
        store_id = context.store_id
        authentication_type = AUTH_LOCAL
    elif context.role != "super_user":
        raise Forbidden("Insufficient permissions")

    if store_id is not None:
        _get_store_or_error(store_id)

    password_hash = None
    if authentication_type == AUTH_LOCAL:
        password = data.get("password")
        if not password:
            raise ValidationError("Password is required for local accounts")
        try:
            password_hash = hash_password(password)
        except PasswordValidationError as exc:
            raise ValidationError(str(exc))
    elif not email:
        raise ValidationError("Email is required for SSO accounts")

    existing = (
        db.session.query(User)
        .filter(db.or_(User.username == username, db.and_(User.email.isnot(None), User.email == email)))
        .first()
    )
    if existing:
        raise Conflict("Username or email already exists")

    user = User(
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        authentication_type=authentication_type,
        password_hash=password_hash,
        store_id=store_id,
        is_active=True,
        preferences={},
        created_by=context.user_id,
    )
    db.session.add(user)
    db.session.flush()

    audit_service.record(
        table_name="users",
        action_type="INSERT",
        record_id=user.id,
        user_id=context.user_id,
        store_id=store_id,
        new_values=user.to_dict(),
    )
    commit_or_raise(conflict_message="Username already exists")
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _managed_cashier(context, user_id: int) -> User:
    """
    Target user for a store manager's status/password change: must be a
    cashier in the manager's effective store.
    """
    user = get_user(user_id)
    if context.role == "super_user":
        return user
    if context.role == "store_manager" and user.role == "cashier" and user.store_id == context.store_id:
        return user
    raise Forbidden("You can only manage cashiers in your own store")


def list_users(context, *, role: str | None = None, store_id: int | None = None, include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if context.role == "store_manager":
        query = query.filter(User.store_id == context.store_id)
    elif store_id is not None:
        query = query.filter(User.store_id == store_id)
    if role:
        query = query.filter(User.role == check_choice(role, ROLES, "role"))
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def update_user(context, user_id: int, data: dict) -> User:
    user = get_user(user_id)
    before = user.to_dict()

    changes = {k: data[k] for k in UPDATABLE_USER_FIELDS if k in data}
    if not changes:
        raise ValidationError(f"Nothing to update. Allowed fields: {', '.join(UPDATABLE_USER_FIELDS)}")

    if "first_name" in changes or "last_name" in changes:
        for field in ("first_name", "last_name"):
            if field in changes:
                value = clean_text(changes[field], field, max_length=80)
                if not value:
                    raise ValidationError(f"{field} cannot be blank")
                setattr(user, field, value)
    if "email" in changes:
        email = clean_text(changes["email"], "email")
        if not email and user.authentication_type == AUTH_EXTERNAL_SSO:
            raise ValidationError("Email is required for SSO accounts")
        user.email = email.lower() if email else None
    if "role" in changes:
        user.role = check_choice(changes["role"], ROLES, "role")
        if user.role not in MANAGER_ROLES:
            # Demoted users stop managing any store
            for store in db.session.query(Store).filter(Store.manager_id == user.id).all():
                store.manager_id = None
    if "store_id" in changes:
        store_id = parse_optional_id(changes["store_id"], "store_id")
        if store_id is not None:
            _get_store_or_error(store_id)
        user.store_id = store_id

    audit_service.record(
        table_name="users",
        action_type="UPDATE",
        record_id=user.id,
        user_id=context.user_id,
        store_id=user.store_id,
        old_values=before,
        new_values=user.to_dict(),
    )
    commit_or_raise(conflict_message="Username or email already exists")
    return user


def set_user_status(context, user_id: int, is_active: bool) -> User:
    user = _managed_cashier(context, user_id)
    if user.id == context.user_id and not is_active:
        raise ValidationError("You cannot deactivate your own account")

    before = {"is_active": user.is_active}
    user.is_active = is_active
    audit_service.record(
        table_name="users",
        action_type="UPDATE",
        record_id=user.id,
        user_id=context.user_id,
        store_id=user.store_id,
        old_values=before,
        new_values={"is_active": is_active},
    )
    commit_or_raise()
    return user


def reset_password(context, user_id: int, new_password: str) -> User:
    user = _managed_cashier(context, user_id)
    if user.authentication_type != AUTH_LOCAL:
        raise ValidationError("Only local accounts have a password")
    try:
        user.password_hash = hash_password(new_password)
    except PasswordValidationError as exc:
        raise ValidationError(str(exc))

    audit_service.record(
        table_name="users",
        action_type="UPDATE",
        record_id=user.id,
        user_id=context.user_id,
        store_id=user.store_id,
        new_values={"password_reset": True},
    )
    commit_or_raise()
    return user


def update_preferences(context, preferences) -> User:
    if not isinstance(preferences, dict):
        raise ValidationError("preferences must be an object")
    user = context.user
    user.preferences = preferences
    commit_or_raise()
    return user


def profile(context) -> dict:
    data = context.user_dict()
    store = db.session.get(Store, context.store_id) if context.store_id is not None else None
    data["stores"] = (
        {
            "store_code": store.store_code,
            "store_name": store.store_name,
            "address": store.address,
            "phone": store.phone,
        }
        if store
        else None
    )
    return data

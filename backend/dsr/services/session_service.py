# Overview: Resolves a bearer token into the per-request authorization context.

"""
Bearer token validation.

A token is tried as a local signed token first and, only if that fails, as
an external identity-provider token. The two outcomes are kept apart as
LocalVerification / ExternalVerification so the caller knows whether the
effective store id came from trusted claims or must be resolved fresh.

The resulting AuthContext lives for one request only and is never cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Union

from ..errors import InvalidToken, UserNotFound
from ..extensions import db
from ..models import User, AUTH_EXTERNAL_SSO
from .identity_provider import IdentityProvider, IdentityProviderError
from .store_access_service import effective_store_id_for
from .token_service import TokenIssuer, TokenError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalVerification:
    claims: Dict[str, Any]

    @property
    def subject_id(self) -> int:
        return self.claims["sub"]


@dataclass(frozen=True)
class ExternalVerification:
    email: str
    subject: str


Verification = Union[LocalVerification, ExternalVerification]


@dataclass
class AuthContext:
    """
    Resolved caller for one request.

    store_id is the effective store id and may differ from user.store_id.
    """
    user: User
    store_id: int | None
    verified_by: str  # "local" or "external"

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def role(self) -> str:
        return self.user.role

    def user_dict(self) -> dict:
        data = self.user.to_dict()
        data["store_id"] = self.store_id
        return data


def verify_bearer(token: str, *, issuer: TokenIssuer, identity_provider: IdentityProvider) -> Verification:
    """Local token first, identity provider second."""
    try:
        return LocalVerification(claims=issuer.verify(token))
    except TokenError as local_exc:
        logger.debug("Local token verification failed (%s); trying identity provider", local_exc)

    try:
        identity = identity_provider.introspect(token)
    except IdentityProviderError as exc:
        logger.info("Identity provider verification failed: %s", exc)
        raise InvalidToken() from exc
    return ExternalVerification(email=identity.email, subject=identity.subject)


def build_context(verification: Verification) -> AuthContext:
    """
    Load the user behind a verification outcome.

    Local tokens keep the store id from their claims verbatim. External tokens
    carry no store claim, so it is resolved from the user row.
    """
    if isinstance(verification, LocalVerification):
        user = db.session.get(User, verification.subject_id)
        if not user or not user.is_active:
            raise UserNotFound()
        return AuthContext(
            user=user,
            store_id=verification.claims.get("store_id"),
            verified_by="local",
        )

    user = (
        db.session.query(User)
        .filter(
            db.func.lower(User.email) == verification.email.lower(),
            User.authentication_type == AUTH_EXTERNAL_SSO,
        )
        .first()
    )
    if not user or not user.is_active:
        raise UserNotFound()

    if user.role == "store_manager" or user.store_id is None:
        store_id = effective_store_id_for(user)
    else:
        store_id = user.store_id
    return AuthContext(user=user, store_id=store_id, verified_by="external")


def authenticate_bearer(token: str, *, issuer: TokenIssuer, identity_provider: IdentityProvider) -> AuthContext:
    verification = verify_bearer(token, issuer=issuer, identity_provider=identity_provider)
    return build_context(verification)

# Overview: Signed bearer tokens carrying the caller's role and effective store.

"""
Token issuer/verifier.

Tokens are HS256 JWTs signed with the server secret. The claims are the
only carrier of the effective store id across requests: once a session
exists the middleware trusts them verbatim instead of re-resolving the
store, so a manager reassigned mid-session keeps the old store until the
token expires.

Claims:
- sub: user id (string form, as required by RFC 7519)
- role: user role at issue time
- store_id: effective store id (may be null)
- iat / exp: issue and expiry timestamps
- any extra claims passed by the caller (username, email, ...)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt


RESERVED_CLAIMS = ("sub", "role", "store_id", "iat", "exp")


class TokenError(Exception):
    """Raised when a token cannot be trusted."""


class TokenExpired(TokenError):
    pass


class InvalidSignature(TokenError):
    """Bad signature, malformed token or missing required claims."""


class TokenIssuer:
    """
    Signs and verifies local session tokens.

    Built once in create_app() from immutable config and stored in
    app.extensions["token_issuer"].
    """

    def __init__(self, secret: str, *, algorithm: str = "HS256", login_ttl: timedelta = timedelta(hours=24)):
        if not secret:
            raise ValueError("Token signing secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.login_ttl = login_ttl

    def issue(
        self,
        subject_id: int,
        role: str,
        effective_store_id: int | None,
        extra_claims: Dict[str, Any] | None = None,
        *,
        expires_in: timedelta | None = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        lifetime = expires_in if expires_in is not None else self.login_ttl

        payload: Dict[str, Any] = {}
        for key, value in (extra_claims or {}).items():
            if key not in RESERVED_CLAIMS:
                payload[key] = value

        payload.update({
            "sub": str(subject_id),
            "role": role,
            "store_id": effective_store_id,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        })
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Return the token claims.

        Raises TokenExpired when the token is past its expiry, InvalidSignature
        for anything else that makes it untrustworthy.
        """
        if not token:
            raise InvalidSignature("Token is blank")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidSignature(str(exc)) from exc

        try:
            claims["sub"] = int(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise InvalidSignature("Token subject is not a user id") from exc
        return claims

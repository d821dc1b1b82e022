"""
Token issuer tests.

Verifies:
- Issued tokens carry sub, role, store_id and expiry
- Tampered, foreign-secret and expired tokens are rejected
- Reserved claims cannot be overridden by extra claims
"""

from datetime import timedelta

import jwt
import pytest

from dsr.services.token_service import InvalidSignature, TokenExpired, TokenIssuer


SECRET = "unit-test-secret-that-is-long-enough-for-hs256"


@pytest.fixture
def issuer():
    return TokenIssuer(SECRET)


class TestIssue:

    def test_round_trip_claims(self, issuer):
        token = issuer.issue(7, "cashier", 3, {"username": "cash"})
        claims = issuer.verify(token)
        assert claims["sub"] == 7
        assert claims["role"] == "cashier"
        assert claims["store_id"] == 3
        assert claims["username"] == "cash"

    def test_null_store_id_is_preserved(self, issuer):
        claims = issuer.verify(issuer.issue(1, "super_user", None))
        assert "store_id" in claims
        assert claims["store_id"] is None

    def test_default_lifetime_is_login_ttl(self, issuer):
        claims = issuer.verify(issuer.issue(1, "cashier", 1))
        assert claims["exp"] - claims["iat"] == int(timedelta(hours=24).total_seconds())

    def test_extra_claims_cannot_override_reserved(self, issuer):
        token = issuer.issue(5, "cashier", 2, {"role": "super_user", "store_id": 99, "sub": "1"})
        claims = issuer.verify(token)
        assert claims["role"] == "cashier"
        assert claims["store_id"] == 2
        assert claims["sub"] == 5

    def test_secret_is_required(self):
        with pytest.raises(ValueError):
            TokenIssuer("")


class TestVerify:

    def test_expired_token(self, issuer):
        token = issuer.issue(1, "cashier", 1, expires_in=timedelta(seconds=-5))
        with pytest.raises(TokenExpired):
            issuer.verify(token)

    def test_foreign_secret(self, issuer):
        other = TokenIssuer("another-secret-that-is-also-long-enough-ok")
        with pytest.raises(InvalidSignature):
            issuer.verify(other.issue(1, "cashier", 1))

    def test_tampered_payload(self, issuer):
        token = issuer.issue(1, "cashier", 1)
        header, payload, signature = token.split(".")
        forged = jwt.encode({"sub": "1", "role": "super_user", "exp": 9999999999}, "x", algorithm="HS256")
        with pytest.raises(InvalidSignature):
            issuer.verify(".".join([header, forged.split(".")[1], signature]))

    def test_garbage(self, issuer):
        with pytest.raises(InvalidSignature):
            issuer.verify("not-a-token")

    def test_blank(self, issuer):
        with pytest.raises(InvalidSignature):
            issuer.verify("")

    def test_missing_subject(self, issuer):
        token = jwt.encode({"exp": 9999999999, "role": "cashier"}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidSignature):
            issuer.verify(token)

    def test_non_numeric_subject(self, issuer):
        token = jwt.encode({"sub": "abc", "exp": 9999999999}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidSignature):
            issuer.verify(token)

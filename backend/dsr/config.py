# backend/dsr/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Postgres connection (service-level credential, bypasses row-level security)
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Token signing
    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    TOKEN_TTL_HOURS = _env_int("TOKEN_TTL_HOURS", 24)

    # bcrypt cost factor for local account passwords
    BCRYPT_ROUNDS = _env_int("BCRYPT_SALT_ROUNDS", 12)

    # External identity provider (token introspection with the public/anon key)
    IDP_URL = os.environ.get("IDP_URL", "")
    IDP_ANON_KEY = os.environ.get("IDP_ANON_KEY", "")
    IDP_TIMEOUT_SECONDS = float(os.environ.get("IDP_TIMEOUT_SECONDS", "10"))
    ALLOWED_EMAIL_DOMAIN = os.environ.get("ALLOWED_EMAIL_DOMAIN", "")

    CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "http://localhost:3003")

    # Gift vouchers
    VOUCHER_PREFIX = os.environ.get("VOUCHER_PREFIX", "PJ")
    VOUCHER_VALIDITY_DAYS = _env_int("VOUCHER_VALIDITY_DAYS", 365)

    # Cashiers only see this many trailing days of history
    CASHIER_HISTORY_DAYS = _env_int("CASHIER_HISTORY_DAYS", 7)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    SERVICE_NAME = "DSR API"
    SERVICE_VERSION = "1.0.0"

    TESTING = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_SECRET = "test-jwt-secret-minimum-32-characters-long"
    BCRYPT_ROUNDS = 4
    IDP_URL = "https://idp.test"
    IDP_ANON_KEY = "test-anon-key"
    ALLOWED_EMAIL_DOMAIN = "example.com"
    LOG_LEVEL = "DEBUG"


REQUIRED_SETTINGS = ("SQLALCHEMY_DATABASE_URI", "JWT_SECRET")

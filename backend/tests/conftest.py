"""
Pytest fixtures for DSR API tests.

Provides an in-memory database, two stores, one user per role, token helpers
and a mock identity provider (httpx.MockTransport) that knows a fixed set of
external tokens.
"""

from datetime import timedelta

import httpx
import pytest

from dsr import create_app
from dsr.config import TestingConfig
from dsr.extensions import db
from dsr.models import Store, User
from dsr.services.auth_service import hash_password
from dsr.services.store_access_service import effective_store_id_for


PASSWORD = "Password123!"

# access token -> identity-provider user payload; reset for every test
IDP_USERS: dict = {}
IDP_REQUESTS: list = []


def _idp_handler(request: httpx.Request) -> httpx.Response:
    IDP_REQUESTS.append(request)
    if request.url.path != "/auth/v1/user" or request.headers.get("apikey") != TestingConfig.IDP_ANON_KEY:
        return httpx.Response(401, json={"message": "invalid api key"})
    auth = request.headers.get("Authorization", "")
    token = auth[len("Bearer "):] if auth.startswith("Bearer ") else ""
    user = IDP_USERS.get(token)
    if user is None:
        return httpx.Response(401, json={"message": "invalid JWT"})
    return httpx.Response(200, json=user)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig, identity_transport=httpx.MockTransport(_idp_handler))

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test."""
    IDP_USERS.clear()
    IDP_REQUESTS.clear()
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def idp_users():
    """Register external tokens: idp_users["token"] = {"id": ..., "email": ...}."""
    return IDP_USERS


@pytest.fixture
def idp_requests():
    return IDP_REQUESTS


def make_user(username, role, *, store_id=None, email=None, sso=False, is_active=True):
    user = User(
        username=username,
        email=email,
        first_name=username.title(),
        last_name="Tester",
        role=role,
        authentication_type="external_sso" if sso else "local",
        password_hash=None if sso else hash_password(PASSWORD),
        store_id=store_id,
        is_active=is_active,
        preferences={},
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def store_a(db_session):
    store = Store(store_code="STA", store_name="Store A", configuration={})
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def store_b(db_session):
    store = Store(store_code="STB", store_name="Store B", configuration={})
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def super_user(db_session):
    return make_user("root", "super_user", email="root@example.com", sso=True)


@pytest.fixture
def accounts_user(db_session):
    return make_user("accounts", "accounts_incharge", email="accounts@example.com", sso=True)


@pytest.fixture
def manager_a(db_session, store_a):
    """Store manager of store A, linked only through stores.manager_id."""
    user = make_user("manager", "store_manager", email="manager@example.com", sso=True)
    store_a.manager_id = user.id
    db_session.commit()
    return user


@pytest.fixture
def cashier_a(db_session, store_a):
    return make_user("cashier_a", "cashier", store_id=store_a.id)


@pytest.fixture
def cashier_b(db_session, store_b):
    return make_user("cashier_b", "cashier", store_id=store_b.id)


def issue_token(app, user, *, expires_in=None):
    issuer = app.extensions["token_issuer"]
    return issuer.issue(
        user.id,
        user.role,
        effective_store_id_for(user),
        {"username": user.username},
        expires_in=expires_in,
    )


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def super_headers(app, super_user):
    return auth_headers(issue_token(app, super_user))


@pytest.fixture
def accounts_headers(app, accounts_user):
    return auth_headers(issue_token(app, accounts_user))


@pytest.fixture
def manager_headers(app, manager_a):
    return auth_headers(issue_token(app, manager_a))


@pytest.fixture
def cashier_headers(app, cashier_a):
    return auth_headers(issue_token(app, cashier_a))


@pytest.fixture
def cashier_b_headers(app, cashier_b):
    return auth_headers(issue_token(app, cashier_b))


@pytest.fixture
def expired_headers(app, cashier_a):
    return auth_headers(issue_token(app, cashier_a, expires_in=timedelta(seconds=-60)))

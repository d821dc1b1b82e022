# Overview: Flask CLI commands for bootstrap, inspection, and maintenance.

# backend/dsr/cli.py
# Commands (run from the backend directory, FLASK_APP=wsgi.py):
# - flask dsr init-db
#   Create any missing tables (the production schema is owned by the database team).
# - flask dsr create-store --code MAIN --name "Main Store" [--manager-id 2]
# - flask dsr create-user --username admin --first-name Ada --last-name Admin --role super_user --password "..."
#   SSO accounts: --auth external_sso --email someone@example.com (no password).
# - flask dsr list-users [--store-id 1]
# - flask dsr issue-token --username admin [--hours 1]
#   Short-lived token for integration testing.
# - flask dsr expire-vouchers
#   Mark active vouchers past their expiry date as expired.

from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, User, ROLES, AUTHENTICATION_TYPES, AUTH_LOCAL
from .services.auth_service import hash_password, PasswordValidationError
from .services.store_access_service import effective_store_id_for
from .services import voucher_service


@click.group("dsr")
def dsr_group():
    """Daily sales report administration commands."""


@dsr_group.command("init-db")
@with_appcontext
def init_db():
    db.create_all()
    click.echo("Database tables created.")


@dsr_group.command("create-store")
@click.option("--code", required=True, help="2-10 uppercase letters/numbers")
@click.option("--name", required=True)
@click.option("--manager-id", type=int, default=None)
@with_appcontext
def create_store_cli(code, name, manager_id):
    code = code.strip().upper()
    if db.session.query(Store).filter_by(store_code=code).first():
        click.echo(f"Error: store code {code} already exists.")
        raise SystemExit(1)

    store = Store(store_code=code, store_name=name.strip(), manager_id=manager_id, configuration={})
    db.session.add(store)
    db.session.flush()
    if manager_id:
        manager = db.session.get(User, manager_id)
        if not manager:
            db.session.rollback()
            click.echo(f"Error: user {manager_id} not found.")
            raise SystemExit(1)
        manager.store_id = store.id
    db.session.commit()
    click.echo(f"Created store {store.store_code} (id={store.id}).")


@dsr_group.command("create-user")
@click.option("--username", required=True)
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@click.option("--role", type=click.Choice(ROLES), default="cashier", show_default=True)
@click.option("--auth", "authentication_type", type=click.Choice(AUTHENTICATION_TYPES), default=AUTH_LOCAL, show_default=True)
@click.option("--email", default=None)
@click.option("--store-id", type=int, default=None)
@click.option("--password", default=None, help="Required for local accounts (prompted if omitted)")
@with_appcontext
def create_user_cli(username, first_name, last_name, role, authentication_type, email, store_id, password):
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"Error: username {username} already exists.")
        raise SystemExit(1)

    password_hash = None
    if authentication_type == AUTH_LOCAL:
        if not password:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        try:
            password_hash = hash_password(password)
        except PasswordValidationError as e:
            click.echo(f"Error: {e}")
            raise SystemExit(1)
    elif not email:
        click.echo("Error: --email is required for SSO accounts.")
        raise SystemExit(1)

    user = User(
        username=username,
        email=email.lower() if email else None,
        first_name=first_name,
        last_name=last_name,
        role=role,
        authentication_type=authentication_type,
        password_hash=password_hash,
        store_id=store_id,
        is_active=True,
        preferences={},
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"Created {role} {username} (id={user.id}).")


@dsr_group.command("list-users")
@click.option("--store-id", type=int, default=None, help="Filter by direct store assignment")
@with_appcontext
def list_users(store_id):
    query = db.session.query(User)
    if store_id:
        query = query.filter_by(store_id=store_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<18} {'Store':<6} {'Active'}")
    click.echo("=" * 100)
    for user in users:
        store = effective_store_id_for(user)
        click.echo(
            f"{user.id:<5} {user.username:<20} {(user.email or '-'):<30} {user.role:<18} "
            f"{(store if store is not None else '-'):<6} {'Yes' if user.is_active else 'No'}"
        )
    click.echo("=" * 100 + "\n")


@dsr_group.command("issue-token")
@click.option("--username", required=True)
@click.option("--hours", type=int, default=1, show_default=True)
@with_appcontext
def issue_token(username, hours):
    user = db.session.query(User).filter_by(username=username, is_active=True).first()
    if not user:
        click.echo(f"Error: active user {username} not found.")
        raise SystemExit(1)
    issuer = current_app.extensions["token_issuer"]
    token = issuer.issue(
        user.id,
        user.role,
        effective_store_id_for(user),
        {"username": user.username, "email": user.email},
        expires_in=timedelta(hours=hours),
    )
    click.echo(token)


@dsr_group.command("expire-vouchers")
@with_appcontext
def expire_vouchers():
    count = voucher_service.expire_all()
    click.echo(f"Expired {count} voucher(s).")


def register_commands(app):
    app.cli.add_command(dsr_group)

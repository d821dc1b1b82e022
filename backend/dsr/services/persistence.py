# Overview: Commit helper that maps database constraint failures onto API errors.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, UpstreamFailure, ValidationError
from ..extensions import db


# Postgres SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
NOT_NULL_VIOLATION = "23502"


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # psycopg 3 exposes sqlstate, psycopg2 exposes pgcode
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code

    # SQLite carries no SQLSTATE; classify by message
    message = str(orig).upper()
    if "UNIQUE CONSTRAINT" in message:
        return UNIQUE_VIOLATION
    if "FOREIGN KEY CONSTRAINT" in message:
        return FOREIGN_KEY_VIOLATION
    if "CHECK CONSTRAINT" in message:
        return CHECK_VIOLATION
    if "NOT NULL CONSTRAINT" in message:
        return NOT_NULL_VIOLATION
    return None


def translate_integrity_error(
    exc: IntegrityError,
    *,
    conflict_message: str | None = None,
):
    """Return the ApiError for a constraint failure, or None if unmapped."""
    code = _sqlstate(exc)
    if code == UNIQUE_VIOLATION:
        return Conflict(conflict_message or "Duplicate entry")
    if code == FOREIGN_KEY_VIOLATION:
        return ValidationError("Referenced record does not exist")
    if code in (CHECK_VIOLATION, NOT_NULL_VIOLATION):
        return ValidationError("Record violates a data constraint")
    return None


def commit_or_raise(*, conflict_message: str | None = None) -> None:
    """
    Commit the current session.

    On IntegrityError the session is rolled back and the failure is re-raised
    as Conflict (unique violation) or ValidationError (foreign key, check,
    not-null). Anything else becomes UpstreamFailure with the fixed 500
    message.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        mapped = translate_integrity_error(exc, conflict_message=conflict_message)
        if mapped is None:
            raise UpstreamFailure() from exc
        raise mapped from exc

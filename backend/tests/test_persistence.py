"""
Constraint failure mapping.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from dsr.errors import Conflict, ValidationError
from dsr.services.persistence import translate_integrity_error


class FakePgError(Exception):
    def __init__(self, sqlstate):
        super().__init__("constraint failed")
        self.sqlstate = sqlstate


def integrity_error(orig):
    return IntegrityError("INSERT ...", {}, orig)


@pytest.mark.parametrize("orig,expected", [
    (FakePgError("23505"), Conflict),
    (FakePgError("23503"), ValidationError),
    (FakePgError("23514"), ValidationError),
    (Exception("UNIQUE constraint failed: users.username"), Conflict),
    (Exception("FOREIGN KEY constraint failed"), ValidationError),
    (Exception("NOT NULL constraint failed: sales.amount"), ValidationError),
])
def test_mapped(orig, expected):
    assert isinstance(translate_integrity_error(integrity_error(orig)), expected)


def test_conflict_message():
    error = translate_integrity_error(integrity_error(FakePgError("23505")), conflict_message="Username already exists")
    assert error.message == "Username already exists"
    assert error.status_code == 409


def test_unmapped():
    assert translate_integrity_error(integrity_error(FakePgError("23P01"))) is None

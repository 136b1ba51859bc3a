# Overview: Pytest coverage for bounded retry of storage failures.

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from eastgate.errors import PersistenceError, ValidationError
from eastgate.services.concurrency import run_with_retry


def _locked():
    return OperationalError("UPDATE stock_items SET quantity=?", {}, Exception("database is locked"))


def test_gives_up_after_configured_attempts(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        raise _locked()

    with pytest.raises(PersistenceError) as exc:
        run_with_retry(_op)

    assert len(calls) == app.config["DB_RETRY_ATTEMPTS"]
    assert exc.value.http_status == 503
    assert isinstance(exc.value.__cause__, OperationalError)


def test_explicit_attempts_override_config(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        raise StaleDataError("version mismatch")

    with pytest.raises(PersistenceError):
        run_with_retry(_op, attempts=5)
    assert len(calls) == 5


def test_recovers_from_transient_failure(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) < 2:
            raise _locked()
        return "done"

    assert run_with_retry(_op) == "done"
    assert len(calls) == 2


def test_business_errors_are_not_retried(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        raise ValidationError("quantity must be > 0")

    with pytest.raises(ValidationError):
        run_with_retry(_op)
    assert len(calls) == 1

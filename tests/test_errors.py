"""
Error classifier tests: amount formatting, affected-row checks and the
mapping of driver exceptions onto the error taxonomy.
"""
import sqlite3
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from cardapi.errors import (
    ConstraintViolationError,
    ErrorKind,
    InsufficientCapturableError,
    InsufficientFundsError,
    InsufficientFundsRaceError,
    IntegrityFailureError,
    LedgerError,
    NotFoundError,
    TransportFailureError,
    classify_db_error,
    expect_one_row,
    format_amount,
    is_foreign_key_violation,
)


class PgForeignKeyViolation(Exception):
    sqlstate = "23503"


@pytest.mark.parametrize(
    "minor, expected",
    [(0, "£0.00"), (5, "£0.05"), (100, "£1.00"), (12345, "£123.45"), (-250, "-£2.50")],
)
def test_format_amount(minor, expected) -> None:
    assert format_amount(minor) == expected


def test_expect_one_row_accepts_single_row() -> None:
    expect_one_row(SimpleNamespace(rowcount=1), "TopUp", "cards", id=1)


@pytest.mark.parametrize("rowcount", [0, 2])
def test_expect_one_row_flags_integrity_failure(rowcount) -> None:
    with pytest.raises(IntegrityFailureError) as exc_info:
        expect_one_row(SimpleNamespace(rowcount=rowcount), "Capture", "vendors", id=3)

    err = exc_info.value
    assert err.status_code == 500
    assert err.kind == ErrorKind.INTEGRITY_FAILURE
    assert err.rowcount == rowcount
    assert err.message == f"Capture: invalid row update on vendors: expected 1 row, got {rowcount}"


def test_postgres_foreign_key_violation_names_reference() -> None:
    exc = IntegrityError("INSERT INTO cards", {}, PgForeignKeyViolation("fk"))

    err = classify_db_error(exc, "AddCard", ("customer", 12))

    assert isinstance(err, ConstraintViolationError)
    assert err.status_code == 400
    assert err.message == "AddCard: no customer with id: 12"


def test_sqlite_foreign_key_violation_is_recognised() -> None:
    exc = IntegrityError("INSERT INTO cards", {}, sqlite3.IntegrityError("FOREIGN KEY constraint failed"))
    assert is_foreign_key_violation(exc)


def test_foreign_key_violation_without_reference_is_transport_failure() -> None:
    exc = IntegrityError("INSERT INTO cards", {}, PgForeignKeyViolation("fk broke"))

    err = classify_db_error(exc, "AddCard")

    assert isinstance(err, TransportFailureError)
    assert err.message == "AddCard: fk broke"


def test_unclassified_driver_error_keeps_original_message() -> None:
    exc = OperationalError("SELECT 1", {}, sqlite3.OperationalError("disk I/O error"))

    err = classify_db_error(exc, "GetCard")

    assert isinstance(err, TransportFailureError)
    assert err.status_code == 500
    assert "disk I/O error" in err.message
    assert err.retryable is False


def test_ledger_errors_pass_through() -> None:
    original = NotFoundError("GetCard", "card", 1)
    assert classify_db_error(original, "GetCard") is original


def test_error_kinds_and_retry_policy() -> None:
    assert InsufficientFundsError("Authorise", 500, 100).retryable is False
    assert InsufficientFundsRaceError("Authorise", 500).retryable is True
    assert InsufficientCapturableError("Capture", 5, None).retryable is True
    assert InsufficientCapturableError("Capture", 5, 4).retryable is False

    race = InsufficientFundsRaceError("Authorise", 500)
    shortfall = InsufficientFundsError("Authorise", 500, 100)
    assert race.kind != shortfall.kind
    assert race.message == "Authorise: insufficient funds for amount £5.00"
    assert shortfall.message == "Authorise: insufficient funds: £5.00 exceeds available £1.00"


def test_error_body() -> None:
    err = NotFoundError("GetVendor", "vendor", 3)
    assert isinstance(err, LedgerError)
    assert err.body() == {"message": "GetVendor: no vendor with id: 3", "code": 404}
    assert NotFoundError("Capture", "authorisation", 3, status_code=400).body()["code"] == 400

"""Error taxonomy for the card ledger and the classifier that maps low-level
execution outcomes (affected-row counts, driver exceptions) onto it."""

import enum
import logging

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

logger = logging.getLogger("cardapi.errors")

FOREIGN_KEY_SQLSTATE = "23503"
SQLITE_FOREIGN_KEY = "SQLITE_CONSTRAINT_FOREIGNKEY"

MESSAGE_BAD_ID = "{op}: no {entity} with id: {id}"
MESSAGE_INVALID_AMOUNT = "{op}: invalid amount {amount}"
MESSAGE_INSUFFICIENT = "{op}: insufficient funds: {amount} exceeds {limit_name} {limit}"
MESSAGE_INSUFFICIENT_FOR = "{op}: insufficient funds for amount {amount}"
MESSAGE_CONCURRENT = "{op}: {limit_name} amount changed concurrently, cannot apply {amount}"
MESSAGE_INVALID_ROW_UPDATE = "{op}: invalid row update on {table}: expected 1 row, got {rowcount}"


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_FUNDS_RACE = "INSUFFICIENT_FUNDS_RACE"
    INSUFFICIENT_CAPTURABLE = "INSUFFICIENT_CAPTURABLE"
    INSUFFICIENT_REFUNDABLE = "INSUFFICIENT_REFUNDABLE"
    INTEGRITY_FAILURE = "INTEGRITY_FAILURE"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"


def format_amount(minor: int) -> str:
    """Render pence as pounds without going through floating point."""
    sign = "-" if minor < 0 else ""
    pounds, pence = divmod(abs(minor), 100)
    return f"{sign}£{pounds}.{pence:02d}"


class LedgerError(Exception):
    """Base class for every error the repositories and the ledger raise."""

    kind = ErrorKind.TRANSPORT_FAILURE
    status_code = 500
    retryable = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def body(self) -> dict:
        return {"message": self.message, "code": self.status_code}


class NotFoundError(LedgerError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, op: str, entity: str, entity_id, status_code: int | None = None):
        super().__init__(
            MESSAGE_BAD_ID.format(op=op, entity=entity, id=entity_id), status_code
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidAmountError(LedgerError):
    kind = ErrorKind.INVALID_AMOUNT
    status_code = 400

    def __init__(self, op: str, amount: int):
        super().__init__(MESSAGE_INVALID_AMOUNT.format(op=op, amount=format_amount(amount)))
        self.amount = amount


class MalformedRequestError(LedgerError):
    kind = ErrorKind.MALFORMED_REQUEST
    status_code = 400


class InsufficientError(LedgerError):
    """A business precondition on an amount failed."""

    status_code = 400
    limit_name = "available"

    def __init__(self, op: str, amount: int, limit: int | None):
        # limit is None when a guarded write lost to a concurrent writer
        if limit is None:
            message = MESSAGE_CONCURRENT.format(
                op=op, limit_name=self.limit_name, amount=format_amount(amount)
            )
            self.retryable = True
        else:
            message = MESSAGE_INSUFFICIENT.format(
                op=op,
                amount=format_amount(amount),
                limit_name=self.limit_name,
                limit=format_amount(limit),
            )
        super().__init__(message)
        self.amount = amount
        self.limit = limit


class InsufficientFundsError(InsufficientError):
    kind = ErrorKind.INSUFFICIENT_FUNDS


class InsufficientCapturableError(InsufficientError):
    kind = ErrorKind.INSUFFICIENT_CAPTURABLE
    limit_name = "capturable"


class InsufficientRefundableError(InsufficientError):
    kind = ErrorKind.INSUFFICIENT_REFUNDABLE
    limit_name = "refundable"


class InsufficientFundsRaceError(LedgerError):
    """The precondition read passed but a concurrent writer got there first."""

    kind = ErrorKind.INSUFFICIENT_FUNDS_RACE
    status_code = 400
    retryable = True

    def __init__(self, op: str, amount: int):
        super().__init__(MESSAGE_INSUFFICIENT_FOR.format(op=op, amount=format_amount(amount)))
        self.amount = amount


class IntegrityFailureError(LedgerError):
    kind = ErrorKind.INTEGRITY_FAILURE
    status_code = 500

    def __init__(self, op: str, table: str, rowcount: int):
        super().__init__(
            MESSAGE_INVALID_ROW_UPDATE.format(op=op, table=table, rowcount=rowcount)
        )
        self.table = table
        self.rowcount = rowcount


class ConstraintViolationError(LedgerError):
    kind = ErrorKind.CONSTRAINT_VIOLATION
    status_code = 400

    def __init__(self, op: str, entity: str, entity_id):
        super().__init__(MESSAGE_BAD_ID.format(op=op, entity=entity, id=entity_id))
        self.entity = entity
        self.entity_id = entity_id


class TransportFailureError(LedgerError):
    kind = ErrorKind.TRANSPORT_FAILURE
    status_code = 500

    def __init__(self, op: str, original: BaseException):
        super().__init__(f"{op}: {original}")
        self.original = original


def expect_one_row(result, op: str, table: str, **context) -> None:
    """Raise IntegrityFailureError unless a write affected exactly one row.

    ``context`` is logged alongside the failure.
    """
    if result.rowcount != 1:
        logger.error(
            "[Ledger] %s: expected 1 row affected on %s, got %s %s",
            op, table, result.rowcount, context,
        )
        raise IntegrityFailureError(op, table, result.rowcount)


def is_foreign_key_violation(exc: BaseException) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == FOREIGN_KEY_SQLSTATE:
        return True
    if getattr(orig, "sqlite_errorname", None) == SQLITE_FOREIGN_KEY:
        return True
    return "FOREIGN KEY constraint failed" in str(orig)


def classify_db_error(
    exc: BaseException, op: str, reference: tuple[str, object] | None = None
) -> LedgerError:
    """Map an exception raised by the database layer onto the taxonomy.

    Ledger errors pass through untouched. A foreign-key violation becomes a
    ConstraintViolationError naming ``reference`` (entity, id) when the caller
    knows which reference the statement carries. Anything else is a
    TransportFailureError with the original driver message preserved.
    """
    if isinstance(exc, LedgerError):
        return exc
    if reference is not None and is_foreign_key_violation(exc):
        entity, entity_id = reference
        logger.info("[Store] %s: foreign key violation on %s %s", op, entity, entity_id)
        return ConstraintViolationError(op, entity, entity_id)
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        logger.error("[Store] %s failed: %s", op, exc.orig)
        return TransportFailureError(op, exc.orig)
    if isinstance(exc, SQLAlchemyError):
        logger.error("[Store] %s failed: %s", op, exc)
        return TransportFailureError(op, exc)
    return TransportFailureError(op, exc)

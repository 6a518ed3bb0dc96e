# Overview: Transaction and locking discipline shared by every mutating service.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import BusyError, TransactionFailedError

_LOCK_ERROR_MARKERS = ("locked", "busy", "deadlock", "lock timeout", "could not obtain lock")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the write transaction for the current unit of work.

    SQLite: BEGIN IMMEDIATE takes the RESERVED lock before any read, so two
    units can never both read stock and then both write. Waits are bounded by
    the connection's busy timeout (STOCKROOM_LOCK_TIMEOUT).

    PostgreSQL: lock waits inside the transaction are bounded with
    SET LOCAL lock_timeout; row locks come from lock_for_update().

    Safe to call when a write transaction is already open (nested units).
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        dbapi_connection = db.session.connection().connection.dbapi_connection
        if not dbapi_connection.in_transaction:
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config["STOCKROOM_LOCK_TIMEOUT"] * 1000)
        db.session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))


def _is_lock_error(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _LOCK_ERROR_MARKERS)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one atomic unit with retry on concurrency-related failures.

    Every failure rolls the session back before anything else happens, so a
    failed unit leaves no partial writes behind.

    - OperationalError (locks, busy) and StaleDataError (optimistic locking
      conflicts) are retried with exponential backoff, then raised as BusyError.
    - IntegrityError and other OperationalErrors become TransactionFailedError.
    - Engine errors (NotFound, InsufficientStock, ...) propagate unchanged.
    """
    config = current_app.config
    if attempts is None:
        attempts = config["STOCKROOM_RETRY_ATTEMPTS"]
    if backoff_base is None:
        backoff_base = config["STOCKROOM_RETRY_BACKOFF"]

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except IntegrityError as exc:
            db.session.rollback()
            raise TransactionFailedError(
                "Constraint violation; unit rolled back",
                details={"error": str(exc.orig)},
            ) from exc
        except OperationalError as exc:
            db.session.rollback()
            if not _is_lock_error(exc):
                raise TransactionFailedError(
                    "Storage operation failed; unit rolled back",
                    details={"error": str(exc.orig)},
                ) from exc
            last_exc = exc
        except StaleDataError as exc:
            db.session.rollback()
            last_exc = exc
        except Exception:
            db.session.rollback()
            raise

        if attempt >= attempts - 1:
            break
        current_app.logger.warning(
            "Contention on attempt %d/%d, retrying: %s", attempt + 1, attempts, last_exc
        )
        time.sleep(backoff_base * (2 ** attempt))

    raise BusyError(
        "Store is busy; retry the operation",
        details={"attempts": attempts},
    ) from last_exc

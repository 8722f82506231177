# Overview: Unit-of-work, row locking and retry helpers shared by the stock engines.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PosLedgerError, TransactionFailedError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_unit() takes the
    database write lock up front instead.
    """
    return query.with_for_update()


def begin_write_unit() -> None:
    """
    Start the unit of work holding the write lock where the backend needs it.

    On SQLite this issues BEGIN IMMEDIATE so that two sales cannot both read
    the same stock before either writes. Skipped when the connection is
    already inside a transaction (the lock is then already held or will be
    taken by the first write).
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute func as one committed unit of work.

    Retries the whole unit on OperationalError (deadlocks, lock timeouts,
    "database is locked") and StaleDataError (version conflicts). Any other
    exception rolls the session back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)

    last_exc = None
    for attempt in range(attempts):
        try:
            begin_write_unit()
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying unit of work after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def run_atomic(func, *, description: str, attempts: int | None = None):
    """
    run_with_retry for the stock engines.

    Domain errors pass through; anything else has already been rolled back
    and is re-raised as TransactionFailedError carrying the cause.
    """
    try:
        return run_with_retry(func, attempts=attempts)
    except PosLedgerError:
        raise
    except Exception as exc:
        current_app.logger.exception("Failed to %s", description)
        raise TransactionFailedError(f"Failed to {description}", cause=exc) from exc

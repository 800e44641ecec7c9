# Overview: Service-layer helpers for transaction boundaries, row locks and retry on write conflicts.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def begin_immediate() -> None:
    """
    Take the database write lock up front.

    SQLite only: serializes writers for the whole orchestrator call, so two
    sales can never interleave between the stock read and the stock write.
    Other dialects rely on lock_for_update() instead.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation as one unit, retrying on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session back
    and propagates unchanged. When retries are exhausted the caller gets a
    ConflictError, which the route layer reports as a retryable 409.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Concurrent update detected, please retry",
                    details={"retryable": True, "attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

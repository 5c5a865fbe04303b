# Overview: Transaction and retry helpers shared by every mutating service operation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the database-wide
    write lock taken by the first UPDATE serializes writers instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation, rolling back on any failure.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates unchanged, so callers never see half-written state.
    """
    if attempts is None:
        attempts = current_app.config.get("CONCURRENCY_MAX_RETRIES", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %s/%s): %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def run_in_transaction(func, *, attempts: int | None = None):
    """Run func and commit once at the end; everything it wrote is all-or-nothing."""
    def _op():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts)

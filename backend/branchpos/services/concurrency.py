# Overview: Row locks, conflict retries and single-commit units of work for stock, sales and shifts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Lock timeouts, deadlock victims and version-counter mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the given query.

    SQLite has no row locks and ignores the clause; its writes are already
    serialized by the database file lock.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func, rolling back and retrying when the database reports a lock
    or version conflict. Waits backoff_base * 2**n between tries and
    re-raises the last conflict once attempts are used up.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Database conflict (%s), retry %d of %d",
                type(exc).__name__, attempt, attempts - 1,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    One unit of work: func's writes are committed together or not at all.

    Any exception rolls the session back, business errors included, so a
    failed transfer or sale never leaves a half-applied change in the
    session. Only lock/version conflicts are retried.
    """
    def _unit():
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_unit, attempts=attempts, backoff_base=backoff_base)

# Overview: Transaction helpers shared by every multi-row mutation (row locks, retries, commit/rollback).

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import IntegrityError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id column still
    serializes writers there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    `func` must be re-runnable from scratch: it re-reads everything it needs.
    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic version conflicts).
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            safe_rollback(context={"attempt": attempt + 1})
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def safe_rollback(*, context: dict | None = None) -> None:
    """
    Roll back the current session.

    If the rollback itself fails the database state is unknown and cannot be
    recovered automatically: raise IntegrityError carrying `context` so the
    log line is enough to reconcile by hand.
    """
    try:
        db.session.rollback()
    except SQLAlchemyError as exc:
        current_app.logger.critical(
            "Rollback failed, manual reconciliation required: %s (%s)", context or {}, exc
        )
        raise IntegrityError(
            "Transaction could not be rolled back; manual reconciliation required",
            details=context,
        ) from exc


def commit_or_rollback(*, context: dict | None = None) -> None:
    """
    Commit the current session. On failure roll back (the compensating
    action) and re-raise the original error.
    """
    try:
        db.session.commit()
    except (OperationalError, StaleDataError):
        # run_with_retry owns the rollback for retryable failures
        raise
    except SQLAlchemyError:
        current_app.logger.exception("Commit failed: %s", context or {})
        safe_rollback(context=context)
        raise

# Overview: Row locks and conflict retries for stock adjustments and order/payment state changes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

"""
Two layers serialize concurrent writers:

- lock_for_update(): SELECT ... FOR UPDATE on engines that honor it
  (PostgreSQL, MySQL). SQLite ignores the clause and relies on its database
  lock plus the InventoryItem.version_id counter.
- run_with_retry(): re-runs a whole unit of work after a lock timeout or a
  version_id mismatch. The unit must re-read everything it writes, because
  the session is rolled back (and expired) between attempts.
"""

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, label: str | None = None):
    """
    Call func() until it succeeds or attempts run out.

    Only lock and version conflicts are retried; domain errors (validation,
    not found, illegal transition) propagate on the first attempt. The last
    conflict is re-raised when every attempt fails.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Write conflict in %s (attempt %s/%s): %s",
                label or getattr(func, "__qualname__", "operation"), attempt, attempts, type(exc).__name__,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))

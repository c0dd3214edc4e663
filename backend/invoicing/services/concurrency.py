# Overview: Row locking and retry helpers for ledger writes.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write on a single invoice.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers on the
    database file); the version_id check still catches lost updates.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a transactional ledger operation.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic version_id conflicts). Any failure rolls the session back so
    nothing half-applied is left behind. The last concurrency failure is
    surfaced as ConcurrencyConflictError.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 2)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "The invoice was modified concurrently; please retry"
                ) from exc
            logger.warning("Ledger write conflict (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

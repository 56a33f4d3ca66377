# Overview: Transaction, locking and retry helpers shared by every ledger.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ErpError, PersistenceError
from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    populate_existing() forces a fresh read even when the row is already in the
    identity map, so the value being modified is the one the lock protects.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id compare-and-swap
    still catches a lost update there.
    """
    return query.with_for_update().populate_existing()


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if has_app_context():
        config = current_app.config
        if attempts is None:
            attempts = config.get("STOCK_RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = config.get("STOCK_RETRY_BACKOFF", 0.05)
    return max(1, attempts or 3), backoff_base if backoff_base is not None else 0.05


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    session=None,
):
    """
    Run one unit of work (which commits) as a single database transaction.

    - OperationalError (locks, deadlocks) and StaleDataError (version_id
      mismatch) roll back and rerun func, bounded by attempts; the last
      failure surfaces as PersistenceError.
    - ErpError from the domain rolls back and propagates unchanged.
    - Any other SQLAlchemyError rolls back and surfaces as PersistenceError.

    session is the one func writes through (defaults to db.session); it is
    the session that gets rolled back.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    session = session if session is not None else db.session
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    "The record was changed by another request; please retry",
                    details={"attempts": attempts},
                ) from exc
            logger.warning(
                "Concurrent update conflict, retrying (attempt %d/%d): %s",
                attempt + 1,
                attempts,
                exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except ErpError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            cause = getattr(exc, "orig", None) or exc
            logger.error("Database rejected write: %s", cause)
            raise PersistenceError(f"Database rejected the write: {cause}") from exc

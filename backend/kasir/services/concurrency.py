# Overview: Transaction retry and row-locking helpers shared by ledger and shift services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import KasirError, StorageError
from ..extensions import db

# Deadlocks / "database is locked" and version_id mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)

# Also retry unique-key races on insert; the retried attempt sees the winner's row
RETRYABLE_WITH_INSERT_RACES = RETRYABLE_ERRORS + (IntegrityError,)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows already in the session identity map are refreshed from the database.
    On SQLite the version_id precondition and the database write lock do the
    serializing instead.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on: tuple = RETRYABLE_ERRORS,
):
    """
    Execute a unit of DB work as one transaction, retrying on concurrency conflicts.

    func must do its own reads, writes and commit. Every failure rolls the
    session back, so a caller never observes a partial write:
    - retry_on errors are retried with exponential backoff; exhausting the
      budget raises StorageError
    - KasirError (business outcomes) propagate unchanged
    - any other SQLAlchemyError becomes StorageError
    """
    if attempts is None:
        attempts = current_app.config.get("KASIR_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("KASIR_RETRY_BACKOFF_SECONDS", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "Giving up after %d attempts: %s", attempts, type(exc).__name__
                )
                raise StorageError("Concurrent update could not be applied, try again") from exc
            current_app.logger.warning(
                "Concurrency conflict (%s), retrying %d/%d",
                type(exc).__name__,
                attempt + 2,
                attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except KasirError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Storage failure")
            raise StorageError("Storage unavailable") from exc
        except Exception:
            db.session.rollback()
            raise
    raise StorageError("Concurrent update could not be applied, try again")

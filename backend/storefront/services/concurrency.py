# Overview: Transient database error retry shared by the slip services.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, StaleDataError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _retry_policy(attempts, backoff_base):
    if has_app_context():
        attempts = attempts or current_app.config.get("DB_RETRY_ATTEMPTS", 3)
        backoff_base = backoff_base if backoff_base is not None else current_app.config.get("DB_RETRY_BACKOFF", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(func, *, session=None, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on transient failures.

    Retries on OperationalError (deadlocks, locks, dropped connections),
    StaleDataError (optimistic locking conflicts) and invalidated
    connections. The session (or any object with rollback(), such as a
    SlipRepository) is rolled back before every retry, so func must redo its
    whole unit of work.
    """
    session = session or db.session
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except DBAPIError as exc:
            session.rollback()
            if not _is_transient(exc) or attempt >= attempts - 1:
                raise
            logger.warning("Transient database error (attempt %d/%d): %s", attempt + 1, attempts, exc)
        except StaleDataError as exc:
            session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Stale row (attempt %d/%d): %s", attempt + 1, attempts, exc)
        time.sleep(backoff_base * (2 ** attempt))

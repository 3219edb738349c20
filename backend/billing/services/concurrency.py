# Overview: Retry and row-locking helpers for invoice/purchase status changes and deletions.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write of a document.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    column turns a lost race into StaleDataError, which run_with_retry
    handles.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB unit of work, retrying on concurrency failures.

    func must be safe to re-run from scratch: it re-reads everything it
    decides on, so a retry after a conflicting status toggle sees the new
    status and does not apply a balance change twice.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))

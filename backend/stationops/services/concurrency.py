# Overview: Row locking and retry helpers for read-decide-write sequences (shift close, upserts).

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Hold the shift, reconciliation or anomaly row while we decide what to write.

    Postgres/MySQL take the row lock; on SQLite this is a no-op.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Re-run `func` after a deadlock/lock timeout (OperationalError) or a
    stale row version (StaleDataError), backing off exponentially.

    Each retry starts from a rolled-back session.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))

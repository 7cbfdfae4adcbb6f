# Overview: Transaction helpers shared by the services that write more than one row.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..errors import StorageFailure
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func() and commit, as one unit of work.

    Any exception rolls the whole session back. OperationalError (deadlocks,
    lock timeouts) is retried with exponential backoff; once attempts run out,
    and for every other SQLAlchemyError, the caller gets a StorageFailure
    chained to the original error. Domain errors raised by func propagate
    unchanged after the rollback.
    """
    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except OperationalError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageFailure() from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageFailure() from exc
        except Exception:
            db.session.rollback()
            raise

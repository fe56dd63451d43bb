"""
Unit-of-work helper for account mutations.

Every balance change and its ledger row must commit together. run_atomic
executes an operation, commits, and rolls back on any failure. Lock and
optimistic-version conflicts are retried a bounded number of times before
surfacing as ConflictError. Other database errors propagate unchanged.
"""
from typing import Callable, TypeVar
from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .exceptions import ConflictError

T = TypeVar('T')

DEFAULT_CONFLICT_RETRIES = 3

# PostgreSQL: serialization_failure, deadlock_detected, lock_not_available
LOCK_CONFLICT_SQLSTATES = {'40001', '40P01', '55P03'}

# MySQL: lock wait timeout, deadlock
LOCK_CONFLICT_ERRNOS = {1205, 1213}


def is_lock_conflict(error: OperationalError) -> bool:
    """True when a driver error is a lock or serialization failure worth retrying."""
    orig = getattr(error, 'orig', None)
    if orig is None:
        return False

    sqlstate = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
    if sqlstate in LOCK_CONFLICT_SQLSTATES:
        return True

    args = getattr(orig, 'args', ())
    if args and args[0] in LOCK_CONFLICT_ERRNOS:
        return True

    # SQLite reports busy writers only through the message
    return 'database is locked' in str(orig).lower()


def run_atomic(operation: Callable[[], T], description: str) -> T:
    """
    Run operation inside one database transaction.

    The operation must re-read whatever it mutates, since it may run more
    than once.

    Args:
        operation: Zero-argument callable that stages changes on db.session
        description: Short label for log messages

    Returns:
        Whatever operation returns, after a successful commit

    Raises:
        ConflictError: conflicts persisted through every retry
        OperationalError: database failures other than lock conflicts
        LoyaltyError: business errors from operation, after rollback
    """
    attempts = current_app.config.get('LOYALTY_CONFLICT_RETRIES', DEFAULT_CONFLICT_RETRIES)
    attempts = max(1, int(attempts))

    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.session.commit()
            return result
        except (StaleDataError, OperationalError) as e:
            db.session.rollback()
            if isinstance(e, OperationalError) and not is_lock_conflict(e):
                current_app.logger.error(f"Database error during {description}: {e}")
                raise
            current_app.logger.warning(
                f"Conflict during {description} (attempt {attempt}/{attempts}): {e}"
            )
        except Exception:
            db.session.rollback()
            raise

    current_app.logger.error(f"Giving up on {description} after {attempts} conflicting attempts")
    raise ConflictError(f"Concurrent update detected during {description}, please retry")

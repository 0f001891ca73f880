# claimloop/core/utils/db.py
"""Classification of task-store exceptions for the poll loop's backoff."""

from __future__ import annotations

from psycopg import InterfaceError, OperationalError
from sqlalchemy.exc import DBAPIError, OperationalError as SAOperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


def is_dbapi_disconnect(exc: DBAPIError) -> bool:
    """True when SQLAlchemy flagged the error as a dropped connection."""
    return bool(getattr(exc, 'connection_invalidated', False)) or bool(
        getattr(exc, 'is_disconnect', False)
    )


def is_retryable_connection_error(exc: BaseException) -> bool:
    """
    True for store faults that call for exponential backoff rather than the
    plain error sleep: driver connection failures, pool checkout timeouts and
    disconnects surfaced through SQLAlchemy.
    """
    match exc:
        case OperationalError() | InterfaceError() | SAOperationalError():
            return True
        case PoolTimeoutError():
            return True
        case DBAPIError() as db_exc if is_dbapi_disconnect(db_exc):
            return True
        case _:
            return False

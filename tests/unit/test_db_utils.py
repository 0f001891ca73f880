"""Unit tests for claimloop.core.utils.db error classification helpers."""

from __future__ import annotations

import pytest

from psycopg import InterfaceError, OperationalError
from sqlalchemy.exc import DBAPIError, OperationalError as SAOperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from claimloop.core.utils.db import is_dbapi_disconnect, is_retryable_connection_error


def _make_dbapi_error(
    *,
    connection_invalidated: bool = False,
    is_disconnect: bool = False,
) -> DBAPIError:
    exc = DBAPIError(
        statement='UPDATE items SET owner=NULL',
        params=None,
        orig=Exception('test'),
        connection_invalidated=connection_invalidated,
    )
    if is_disconnect:
        exc.is_disconnect = is_disconnect  # type: ignore[attr-defined]
    return exc


@pytest.mark.unit
class TestIsDBAPIDisconnect:
    def test_connection_invalidated(self) -> None:
        assert is_dbapi_disconnect(_make_dbapi_error(connection_invalidated=True)) is True

    def test_is_disconnect(self) -> None:
        assert is_dbapi_disconnect(_make_dbapi_error(is_disconnect=True)) is True

    def test_neither_flag_set(self) -> None:
        assert is_dbapi_disconnect(_make_dbapi_error()) is False


@pytest.mark.unit
class TestIsRetryableConnectionError:
    def test_psycopg_operational_error(self) -> None:
        assert is_retryable_connection_error(OperationalError('server closed')) is True

    def test_psycopg_interface_error(self) -> None:
        assert is_retryable_connection_error(InterfaceError('connection closed')) is True

    def test_sqlalchemy_operational_error(self) -> None:
        exc = SAOperationalError('SELECT 1', None, Exception('boom'))
        assert is_retryable_connection_error(exc) is True

    def test_pool_timeout(self) -> None:
        assert is_retryable_connection_error(PoolTimeoutError('pool exhausted')) is True

    def test_dbapi_disconnect(self) -> None:
        exc = _make_dbapi_error(connection_invalidated=True)
        assert is_retryable_connection_error(exc) is True

    def test_dbapi_error_without_disconnect(self) -> None:
        assert is_retryable_connection_error(_make_dbapi_error()) is False

    def test_value_error(self) -> None:
        assert is_retryable_connection_error(ValueError('bad input')) is False

    def test_os_error(self) -> None:
        assert is_retryable_connection_error(OSError('socket')) is False

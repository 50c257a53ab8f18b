"""Tests for pool.py - bounded, lazily opened connection pool."""

import threading
from unittest.mock import MagicMock

import pytest

from scanbench.errors import FatalSetupError
from scanbench.pool import ConnectionPool


def mock_connector():
    return MagicMock(side_effect=lambda: MagicMock(name="conn"))


class TestSizing:
    @pytest.mark.parametrize("workers", [1, 2, 4, 8])
    def test_workers_plus_one_checkouts_do_not_block(self, workers):
        pool = ConnectionPool(mock_connector(), max_size=workers + 1)
        held = [pool.acquire(timeout=1) for _ in range(workers + 1)]
        assert len({id(conn) for conn in held}) == workers + 1
        assert pool.in_use == workers + 1

    def test_one_more_checkout_blocks_until_a_release(self):
        workers = 3
        pool = ConnectionPool(mock_connector(), max_size=workers + 1)
        held = [pool.acquire() for _ in range(workers + 1)]
        got = []
        waiter = threading.Thread(target=lambda: got.append(pool.acquire()))
        waiter.start()
        waiter.join(0.2)
        assert waiter.is_alive()
        assert not got

        pool.release(held[0])
        waiter.join(2)
        assert not waiter.is_alive()
        assert got == [held[0]]
        assert pool.opened == workers + 1

    def test_timeout_when_exhausted(self):
        pool = ConnectionPool(mock_connector(), max_size=1)
        pool.acquire()
        with pytest.raises(FatalSetupError, match="Timed out"):
            pool.acquire(timeout=0.05)

    def test_rejects_empty_pool(self):
        with pytest.raises(ValueError):
            ConnectionPool(mock_connector(), max_size=0)


class TestLifecycle:
    def test_connections_open_lazily_and_are_reused(self):
        connector = mock_connector()
        pool = ConnectionPool(connector, max_size=3)
        assert connector.call_count == 0
        with pool.connection() as first:
            pass
        with pool.connection() as second:
            pass
        assert first is second
        assert connector.call_count == 1
        assert pool.in_use == 0

    def test_connection_leaving_by_exception_is_discarded(self):
        pool = ConnectionPool(mock_connector(), max_size=1)
        with pytest.raises(RuntimeError):
            with pool.connection() as conn:
                raise RuntimeError("boom")
        conn.close.assert_called_once()
        assert pool.in_use == 0
        assert pool.opened == 0
        # the freed slot is usable again
        with pool.connection(timeout=1) as replacement:
            assert replacement is not conn

    def test_connector_failure_frees_the_slot(self):
        connector = MagicMock(side_effect=OSError("connection refused"))
        pool = ConnectionPool(connector, max_size=1)
        with pytest.raises(FatalSetupError, match="connection refused"):
            pool.acquire()
        assert pool.opened == 0
        assert pool.in_use == 0

    def test_close_wakes_waiters_and_closes_idle(self):
        pool = ConnectionPool(mock_connector(), max_size=2)
        idle = pool.acquire()
        busy = pool.acquire()
        pool.release(idle)
        # drain the idle connection so the next acquire has to wait
        assert pool.acquire() is idle
        errors = []

        def wait_for_connection():
            try:
                pool.acquire()
            except FatalSetupError as exc:
                errors.append(exc)

        waiter = threading.Thread(target=wait_for_connection)
        waiter.start()
        waiter.join(0.1)
        pool.close()
        waiter.join(2)
        assert len(errors) == 1
        assert pool.closed

        pool.release(busy)
        busy.close.assert_called_once()
        with pytest.raises(FatalSetupError, match="closed"):
            pool.acquire()

    def test_double_release_is_rejected(self):
        pool = ConnectionPool(mock_connector(), max_size=2)
        conn = pool.acquire()
        pool.release(conn)
        with pytest.raises(ValueError, match="not checked out"):
            pool.release(conn)
        assert pool.in_use == 0
        assert pool.opened == 1

    def test_foreign_connection_is_rejected(self):
        pool = ConnectionPool(mock_connector(), max_size=2)
        held = pool.acquire()
        with pytest.raises(ValueError, match="not checked out"):
            pool.release(MagicMock(name="stranger"), discard=True)
        assert pool.in_use == 1
        assert pool.opened == 1
        pool.release(held)
        assert pool.in_use == 0

    def test_context_manager_closes_idle_connections(self):
        with ConnectionPool(mock_connector(), max_size=2) as pool:
            with pool.connection() as conn:
                pass
        conn.close.assert_called_once()
        assert pool.opened == 0

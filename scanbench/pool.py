"""Bounded pool of live database connections shared by the scan workers."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Set

from scanbench.errors import FatalSetupError

logger = logging.getLogger(__name__)


def close_quietly(conn: Any) -> None:
    try:
        conn.close()
    except Exception:
        logger.debug("Unable to close connection %r", conn, exc_info=True)


class ConnectionPool:
    """Lazily opened connections, at most ``max_size`` checked out or idle.

    Size the pool ``worker_count + 1`` so the coordinator's metadata query
    always finds a slot while every worker holds one.
    """

    def __init__(self, connector: Callable[[], Any], max_size: int) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1 (got {max_size})")
        self._connector = connector
        self.max_size = max_size
        self._idle: List[Any] = []
        # id() of every connection currently checked out
        self._checked_out: Set[int] = set()
        self._opened = 0
        self._in_use = 0
        self._closed = False
        self._cond = threading.Condition(threading.Lock())

    @property
    def in_use(self) -> int:
        with self._cond:
            return self._in_use

    @property
    def opened(self) -> int:
        with self._cond:
            return self._opened

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def acquire(self, timeout: Optional[float] = None) -> Any:
        """Check out a connection, blocking while the pool is exhausted."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    raise FatalSetupError("Connection pool is closed")
                if self._idle:
                    conn = self._idle.pop()
                    self._in_use += 1
                    self._checked_out.add(id(conn))
                    return conn
                if self._opened < self.max_size:
                    # reserve the slot, open outside the lock
                    self._opened += 1
                    self._in_use += 1
                    break
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise FatalSetupError(
                        f"Timed out after {timeout}s waiting for one of {self.max_size} connections"
                    )
                self._cond.wait(remaining)
        try:
            conn = self._connector()
        except Exception as exc:
            with self._cond:
                self._opened -= 1
                self._in_use -= 1
                self._cond.notify()
            raise FatalSetupError(f"Unable to open connection: {exc}") from exc
        with self._cond:
            self._checked_out.add(id(conn))
        return conn

    def release(self, conn: Any, *, discard: bool = False) -> None:
        """Return ``conn``; ``discard`` closes it and frees its slot instead.

        Raises ValueError for a connection that is not checked out from this
        pool (a second release, or one the pool never handed out).
        """
        with self._cond:
            if id(conn) not in self._checked_out:
                raise ValueError(f"Connection {conn!r} is not checked out from this pool")
            self._checked_out.discard(id(conn))
            self._in_use -= 1
            keep = not (discard or self._closed)
            if keep:
                self._idle.append(conn)
            else:
                self._opened -= 1
            self._cond.notify()
        if not keep:
            close_quietly(conn)

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[Any]:
        conn = self.acquire(timeout)
        try:
            yield conn
        except BaseException:
            # state of a connection abandoned mid-query is unknown
            self.release(conn, discard=True)
            raise
        else:
            self.release(conn)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            idle, self._idle = self._idle, []
            self._opened -= len(idle)
            self._cond.notify_all()
        for conn in idle:
            close_quietly(conn)
        logger.debug("Connection pool closed (%d idle connection(s) dropped)", len(idle))

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

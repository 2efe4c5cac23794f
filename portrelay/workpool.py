"""Pool of work connections a client keeps open for its control."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from typing import Any

_EXTRA_CAPACITY = 10


class ControlClosed(Exception):
    """The control, and with it the pool, is closed."""

    def __init__(self, message: str = "control is already closed") -> None:
        super().__init__(message)


class PoolFull(Exception):
    """The pool already holds as many work connections as it may."""

    def __init__(self, message: str = "work connection pool is full, discarding") -> None:
        super().__init__(message)


class WorkConnTimeout(Exception):
    """No work connection arrived in time."""

    def __init__(self, message: str = "timeout trying to get work connection") -> None:
        super().__init__(message)


def effective_pool_count(requested: int, max_pool_count: int) -> int:
    """The pool size a client asked for, capped by the server's maximum."""
    return min(requested, max_pool_count)


class WorkConnPool:
    """Work connections waiting to carry user traffic.

    ``request_work_conn`` asks the client for one more connection; it raises
    once the control can no longer send messages.
    """

    def __init__(
        self,
        pool_count: int,
        request_work_conn: Callable[[], None],
        timeout: float,
    ) -> None:
        self.pool_count = pool_count
        self.capacity = pool_count + _EXTRA_CAPACITY
        self.timeout = timeout
        self._request = request_work_conn
        self._conns: deque[Any] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._conns)

    def __enter__(self) -> WorkConnPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Ask the client to fill the pool."""
        for _ in range(self.pool_count):
            self._request()

    def register(self, conn: Any) -> None:
        """Add a work connection the client opened."""
        with self._cond:
            if self._closed:
                raise ControlClosed()
            if len(self._conns) >= self.capacity:
                raise PoolFull()
            self._conns.append(conn)
            self._cond.notify()

    def get(self) -> Any:
        """Take a work connection, asking the client for one if none is waiting."""
        with self._cond:
            conn = self._conns.popleft() if self._conns else None
            if conn is None and self._closed:
                raise ControlClosed()
        if conn is None:
            try:
                self._request()
            except Exception as exc:
                raise ControlClosed() from exc
            with self._cond:
                ready = self._cond.wait_for(lambda: self._conns or self._closed, self.timeout)
                if not ready:
                    raise WorkConnTimeout()
                if not self._conns:
                    raise ControlClosed()
                conn = self._conns.popleft()
        try:
            self._request()
        except Exception:
            pass
        return conn

    def close(self) -> None:
        """Close the pool and every connection still waiting in it."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            waiting = list(self._conns)
            self._conns.clear()
            self._cond.notify_all()
        for conn in waiting:
            conn.close()
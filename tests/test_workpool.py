import threading

import pytest

from portrelay.workpool import (
    ControlClosed,
    PoolFull,
    WorkConnPool,
    WorkConnTimeout,
    effective_pool_count,
)


class FakeConn:
    def __init__(self, label):
        self.label = label
        self.closed = False

    def close(self):
        self.closed = True


class Requests:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


def test_effective_pool_count_is_capped():
    assert effective_pool_count(5, 3) == 3
    assert effective_pool_count(2, 5) == 2


def test_start_requests_pool_count_connections():
    requests = Requests()
    pool = WorkConnPool(4, requests, timeout=1.0)
    pool.start()
    assert requests.count == 4


def test_get_returns_registered_conn_and_requests_replacement():
    requests = Requests()
    pool = WorkConnPool(1, requests, timeout=1.0)
    conn = FakeConn("a")
    pool.register(conn)
    assert pool.get() is conn
    assert requests.count == 1
    assert len(pool) == 0


def test_connections_come_out_in_order():
    pool = WorkConnPool(2, Requests(), timeout=1.0)
    conns = [FakeConn(i) for i in range(3)]
    for conn in conns:
        pool.register(conn)
    assert [pool.get() for _ in conns] == conns


def test_register_beyond_capacity_raises():
    pool = WorkConnPool(0, Requests(), timeout=1.0)
    for i in range(pool.capacity):
        pool.register(FakeConn(i))
    assert len(pool) == pool.capacity
    with pytest.raises(PoolFull):
        pool.register(FakeConn("extra"))


def test_get_waits_for_requested_connection():
    conn = FakeConn("late")
    pool = None

    def request():
        threading.Timer(0.02, pool.register, args=(conn,)).start()

    pool = WorkConnPool(1, request, timeout=5.0)
    assert pool.get() is conn


def test_get_times_out():
    pool = WorkConnPool(1, Requests(), timeout=0.05)
    with pytest.raises(WorkConnTimeout, match="timeout trying to get work connection"):
        pool.get()


def test_get_raises_when_request_fails():
    def request():
        raise RuntimeError("send channel closed")

    pool = WorkConnPool(1, request, timeout=1.0)
    with pytest.raises(ControlClosed):
        pool.get()


def test_close_closes_waiting_connections():
    pool = WorkConnPool(2, Requests(), timeout=1.0)
    conns = [FakeConn(i) for i in range(2)]
    for conn in conns:
        pool.register(conn)
    pool.close()
    assert all(conn.closed for conn in conns)
    assert len(pool) == 0
    with pytest.raises(ControlClosed):
        pool.get()


def test_register_after_close_raises():
    pool = WorkConnPool(1, Requests(), timeout=1.0)
    pool.close()
    with pytest.raises(ControlClosed):
        pool.register(FakeConn("x"))


def test_close_wakes_waiting_get():
    pool = WorkConnPool(1, Requests(), timeout=5.0)
    timer = threading.Timer(0.05, pool.close)
    timer.start()
    try:
        with pytest.raises(ControlClosed):
            pool.get()
    finally:
        timer.join(timeout=5)
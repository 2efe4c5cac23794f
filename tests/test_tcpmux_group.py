import queue
import threading

import pytest

from portrelay.errors import GroupAuthFailed, GroupParamsInvalid, ListenerClosed
from portrelay.tcpmux_group import HTTP_CONNECT_TCP_MULTIPLEXER, TCPMuxGroupController


class FakeConn:
    def __init__(self, label):
        self.label = label
        self.closed = False

    def close(self):
        self.closed = True


class FakeMuxListener:
    def __init__(self, domain):
        self.domain = domain
        self.addr = ("127.0.0.1", 4000)
        self.closed = False
        self._queue = queue.Queue()

    def push(self, conn):
        self._queue.put(conn)

    def accept(self):
        item = self._queue.get()
        if item is None:
            raise OSError("listener closed")
        return item

    def close(self):
        self.closed = True
        self._queue.put(None)


class FakeMuxer:
    def __init__(self, failing=()):
        self.listeners = []
        self.failing = set(failing)

    def listen(self, route_config):
        if route_config.domain in self.failing:
            raise OSError("route taken")
        ln = FakeMuxListener(route_config.domain)
        self.listeners.append(ln)
        return ln


def test_first_member_opens_route_for_domain():
    muxer = FakeMuxer()
    ctl = TCPMuxGroupController(muxer)
    ln = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    assert [m.domain for m in muxer.listeners] == ["a.example.com"]
    assert ln.addr == muxer.listeners[0].addr
    assert "g" in ctl


def test_connection_is_delivered_to_member():
    muxer = FakeMuxer()
    ctl = TCPMuxGroupController(muxer)
    ln = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    conn = FakeConn("one")
    muxer.listeners[0].push(conn)
    assert ln.accept() is conn


def test_second_member_shares_route():
    muxer = FakeMuxer()
    ctl = TCPMuxGroupController(muxer)
    first = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    second = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    assert len(muxer.listeners) == 1
    assert second.addr == first.addr


def test_different_domain_is_invalid():
    ctl = TCPMuxGroupController(FakeMuxer())
    ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    with pytest.raises(GroupParamsInvalid):
        ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "b.example.com")


def test_wrong_group_key_fails_auth():
    ctl = TCPMuxGroupController(FakeMuxer())
    ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    with pytest.raises(GroupAuthFailed):
        ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "other", "a.example.com")


def test_unknown_multiplexer():
    ctl = TCPMuxGroupController(FakeMuxer())
    with pytest.raises(ValueError, match=r"unknown multiplexer \[bogus\]"):
        ctl.listen("bogus", "g", "key", "a.example.com")


def test_last_close_closes_route_and_removes_group():
    muxer = FakeMuxer()
    ctl = TCPMuxGroupController(muxer)
    first = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    second = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    first.close()
    assert muxer.listeners[0].closed is False
    assert "g" in ctl
    second.close()
    assert muxer.listeners[0].closed is True
    assert "g" not in ctl


def test_accept_after_close_raises():
    ctl = TCPMuxGroupController(FakeMuxer())
    ln = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    ln.close()
    with pytest.raises(ListenerClosed):
        ln.accept()


def test_blocked_accept_is_woken_by_close():
    ctl = TCPMuxGroupController(FakeMuxer())
    ln = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    timer = threading.Timer(0.05, ln.close)
    timer.start()
    try:
        with pytest.raises(ListenerClosed):
            ln.accept()
    finally:
        timer.join(timeout=5)


def test_route_failure_propagates_and_group_can_retry():
    muxer = FakeMuxer(failing={"a.example.com"})
    ctl = TCPMuxGroupController(muxer)
    with pytest.raises(OSError):
        ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com")
    ln = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "b.example.com")
    assert [m.domain for m in muxer.listeners] == ["b.example.com"]
    assert ln.addr == muxer.listeners[0].addr


def test_group_can_be_reopened_after_all_members_leave():
    muxer = FakeMuxer()
    ctl = TCPMuxGroupController(muxer)
    ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "key", "a.example.com").close()
    ln = ctl.listen(HTTP_CONNECT_TCP_MULTIPLEXER, "g", "new", "b.example.com")
    conn = FakeConn("two")
    muxer.listeners[1].push(conn)
    assert ln.accept() is conn
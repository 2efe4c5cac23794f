"""Load balancing of one multiplexed domain shared by several proxies."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Protocol

from portrelay.errors import GroupAuthFailed, GroupParamsInvalid, ListenerClosed
from portrelay.http_group import RouteConfig
from portrelay.tcp_group import GroupListener

HTTP_CONNECT_TCP_MULTIPLEXER = "httpconnect"


class MuxListener(Protocol):
    """A listener handed out by a multiplexer for one route."""

    addr: Any

    def accept(self) -> Any: ...

    def close(self) -> None: ...


class HTTPConnectMuxer(Protocol):
    """Routes HTTP CONNECT requests to listeners by domain."""

    def listen(self, route_config: RouteConfig) -> MuxListener: ...


class TCPMuxGroup:
    """Proxies sharing one multiplexed route; each connection goes to one of them."""

    def __init__(self, controller: TCPMuxGroupController) -> None:
        self._ctl = controller
        self.group = ""
        self.group_key = ""
        self.domain = ""
        self._listeners: list[GroupListener] = []
        self._mux_listener: MuxListener | None = None
        self._pending: deque[Any] = deque()
        self._shut = False
        self._cond = threading.Condition(threading.RLock())

    def http_connect_listen(self, group: str, group_key: str, domain: str) -> GroupListener:
        """Join the group; the first member opens the route on the multiplexer."""
        with self._cond:
            if not self._listeners:
                mux_listener = self._ctl.muxer.listen(RouteConfig(domain=domain))
                listener = GroupListener(group, self, getattr(mux_listener, "addr", None))
                self.group = group
                self.group_key = group_key
                self.domain = domain
                self._mux_listener = mux_listener
                self._shut = False
                self._pending.clear()
                self._listeners.append(listener)
                threading.Thread(target=self._worker, args=(mux_listener,), daemon=True).start()
                return listener

            if self.group != group or self.domain != domain:
                raise GroupParamsInvalid()
            if self.group_key != group_key:
                raise GroupAuthFailed()
            listener = GroupListener(group, self, self._listeners[0].addr)
            self._listeners.append(listener)
            return listener

    def close_listener(self, listener: GroupListener) -> None:
        """Remove a member; the last one closes the route and drops the group."""
        with self._cond:
            for i, member in enumerate(self._listeners):
                if member is listener:
                    del self._listeners[i]
                    break
            if self._listeners or self._mux_listener is None:
                return
            self._shut = True
            self._cond.notify_all()
            while self._pending:
                self._pending.popleft().close()
            self._mux_listener.close()
            self._mux_listener = None
            self._ctl.remove_group(self.group)

    def _worker(self, mux_listener: MuxListener) -> None:
        while True:
            try:
                conn = mux_listener.accept()
            except Exception:
                return
            with self._cond:
                if self._shut or self._mux_listener is not mux_listener:
                    conn.close()
                    return
                self._pending.append(conn)
                self._cond.notify_all()

    def _next_conn(self, listener: GroupListener) -> Any:
        with self._cond:
            while True:
                if listener._closed:
                    raise ListenerClosed()
                if self._pending:
                    return self._pending.popleft()
                if self._shut:
                    raise ListenerClosed()
                self._cond.wait()

    def _mark_closed(self, listener: GroupListener) -> bool:
        with self._cond:
            if listener._closed:
                return False
            listener._closed = True
            self._cond.notify_all()
            return True


class TCPMuxGroupController:
    """All multiplexed groups, indexed by group name."""

    def __init__(self, muxer: HTTPConnectMuxer) -> None:
        self.muxer = muxer
        self._groups: dict[str, TCPMuxGroup] = {}
        self._lock = threading.Lock()

    def __contains__(self, group: object) -> bool:
        with self._lock:
            return group in self._groups

    def listen(self, multiplexer: str, group: str, group_key: str, domain: str) -> GroupListener:
        """Join ``group`` on the given multiplexer, creating the group if needed."""
        with self._lock:
            mux_group = self._groups.get(group)
            if mux_group is None:
                mux_group = TCPMuxGroup(self)
                self._groups[group] = mux_group
        if multiplexer == HTTP_CONNECT_TCP_MULTIPLEXER:
            return mux_group.http_connect_listen(group, group_key, domain)
        raise ValueError(f"unknown multiplexer [{multiplexer}]")

    def remove_group(self, group: str) -> None:
        """Forget the group called ``group``."""
        with self._lock:
            self._groups.pop(group, None)
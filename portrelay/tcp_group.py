"""Load balancing of one public TCP port shared by several proxies."""

from __future__ import annotations

import socket
import threading
from collections import deque
from typing import Any

from portrelay.errors import (
    GroupAuthFailed,
    GroupDifferentPort,
    GroupParamsInvalid,
    ListenerClosed,
)
from portrelay.ports import PortManager

_ACCEPT_POLL = 0.2


def _listen_tcp(addr: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in addr else socket.AF_INET
    sock = socket.create_server((addr, port), family=family)
    sock.settimeout(_ACCEPT_POLL)
    return sock


class GroupListener:
    """One proxy's view of a shared listener."""

    def __init__(self, group_name: str, group: Any, addr: Any) -> None:
        self.group_name = group_name
        self.addr = addr
        self._group = group
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> GroupListener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def accept(self) -> socket.socket:
        """Wait for the next connection handed out by the group."""
        return self._group._next_conn(self)

    def close(self) -> None:
        """Stop accepting and leave the group."""
        if self._group._mark_closed(self):
            self._group.close_listener(self)


class TCPGroup:
    """Proxies sharing one listening port; each connection goes to one of them."""

    def __init__(self, controller: TCPGroupController) -> None:
        self._ctl = controller
        self.group = ""
        self.group_key = ""
        self.addr = ""
        self.port = 0
        self.real_port = 0
        self._listeners: list[GroupListener] = []
        self._sock: socket.socket | None = None
        self._pending: deque[socket.socket] = deque()
        self._shut = False
        self._cond = threading.Condition(threading.RLock())

    def listen(
        self, proxy_name: str, group: str, group_key: str, addr: str, port: int
    ) -> tuple[GroupListener, int]:
        """Join the group; the first member opens the real listening socket."""
        with self._cond:
            if not self._listeners:
                real_port = self._ctl.port_manager.acquire(proxy_name, port)
                sock = _listen_tcp(addr, port)
                listener = GroupListener(group, self, sock.getsockname())
                self.group = group
                self.group_key = group_key
                self.addr = addr
                self.port = port
                self.real_port = real_port
                self._sock = sock
                self._shut = False
                self._pending.clear()
                self._listeners.append(listener)
                threading.Thread(target=self._worker, args=(sock,), daemon=True).start()
                return listener, real_port

            if self.group != group or self.addr != addr:
                raise GroupParamsInvalid()
            if self.port != port:
                raise GroupDifferentPort()
            if self.group_key != group_key:
                raise GroupAuthFailed()
            listener = GroupListener(group, self, self._listeners[0].addr)
            self._listeners.append(listener)
            return listener, self.real_port

    def close_listener(self, listener: GroupListener) -> None:
        """Remove a member; the last one closes the socket and frees the port."""
        with self._cond:
            for i, member in enumerate(self._listeners):
                if member is listener:
                    del self._listeners[i]
                    break
            if self._listeners or self._sock is None:
                return
            self._shut = True
            self._cond.notify_all()
            while self._pending:
                self._pending.popleft().close()
            self._sock.close()
            self._sock = None
            self._ctl.port_manager.release(self.real_port)
            self._ctl.remove_group(self.group)

    def _worker(self, sock: socket.socket) -> None:
        while True:
            with self._cond:
                if self._shut or self._sock is not sock:
                    return
            try:
                conn, _ = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.settimeout(None)
            with self._cond:
                if self._shut or self._sock is not sock:
                    conn.close()
                    return
                self._pending.append(conn)
                self._cond.notify_all()

    def _next_conn(self, listener: GroupListener) -> socket.socket:
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


class TCPGroupController:
    """All TCP groups, indexed by group name."""

    def __init__(self, port_manager: PortManager) -> None:
        self.port_manager = port_manager
        self._groups: dict[str, TCPGroup] = {}
        self._lock = threading.Lock()

    def __contains__(self, group: object) -> bool:
        with self._lock:
            return group in self._groups

    def listen(
        self, proxy_name: str, group: str, group_key: str, addr: str, port: int
    ) -> tuple[GroupListener, int]:
        """Join ``group``, creating it if needed; return the listener and real port."""
        with self._lock:
            tcp_group = self._groups.get(group)
            if tcp_group is None:
                tcp_group = TCPGroup(self)
                self._groups[group] = tcp_group
        return tcp_group.listen(proxy_name, group, group_key, addr, port)

    def remove_group(self, group: str) -> None:
        """Forget the group called ``group``."""
        with self._lock:
            self._groups.pop(group, None)
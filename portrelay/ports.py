"""Allocation of public ports to proxies, with per-proxy reservations."""

from __future__ import annotations

import os
import random
import socket
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

MIN_PORT = 1
MAX_PORT = 65535
MAX_PORT_RESERVED_DURATION = 24 * 60 * 60.0
CLEAN_RESERVED_PORTS_INTERVAL = 60 * 60.0
_MAX_RANDOM_TRIES = 5


class PortError(Exception):
    """Base class for port allocation errors."""

    default_message = "port error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(self.default_message if message is None else message)


class PortAlreadyUsed(PortError):
    default_message = "port already used"


class PortNotAllowed(PortError):
    default_message = "port not allowed"


class PortUnavailable(PortError):
    default_message = "port unavailable"


class NoAvailablePort(PortError):
    default_message = "no available port"


@dataclass
class PortContext:
    """Who holds a port and since when."""

    proxy_name: str
    port: int = 0
    closed: bool = False
    update_time: float = field(default_factory=time.monotonic)


class PortManager:
    """Hands out ports from an allowed set and remembers each proxy's last port."""

    def __init__(
        self,
        net_type: str,
        bind_addr: str,
        allow_ports: Iterable[int] | None = None,
        *,
        clean_interval: float | None = CLEAN_RESERVED_PORTS_INTERVAL,
    ) -> None:
        self.net_type = net_type
        self.bind_addr = bind_addr
        allowed = set(allow_ports) if allow_ports else set()
        self._free: set[int] = allowed or set(range(MIN_PORT, MAX_PORT + 1))
        self._reserved: dict[str, PortContext] = {}
        self._used: dict[int, PortContext] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._cleaner: threading.Thread | None = None
        if clean_interval and clean_interval > 0:
            self._cleaner = threading.Thread(
                target=self._clean_worker, args=(clean_interval,), daemon=True
            )
            self._cleaner.start()

    def __enter__(self) -> PortManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def acquire(self, name: str, port: int) -> int:
        """Give ``port`` to proxy ``name``, or any free port when ``port`` is 0."""
        ctx = PortContext(proxy_name=name)
        with self._lock:
            if port == 0:
                reserved = self._reserved.get(name)
                if reserved is not None and self._is_port_available(reserved.port):
                    return self._take(reserved.port, name, ctx)
                pool = list(self._free)
                for candidate in random.sample(pool, min(_MAX_RANDOM_TRIES, len(pool))):
                    if self._is_port_available(candidate):
                        return self._take(candidate, name, ctx)
                raise NoAvailablePort()

            if port in self._free:
                if not self._is_port_available(port):
                    raise PortUnavailable()
                return self._take(port, name, ctx)
            if port in self._used:
                raise PortAlreadyUsed()
            raise PortNotAllowed()

    def release(self, port: int) -> None:
        """Return ``port`` to the free set; its reservation is kept."""
        with self._lock:
            ctx = self._used.pop(port, None)
            if ctx is None:
                return
            self._free.add(port)
            ctx.closed = True
            ctx.update_time = time.monotonic()

    def clean_reserved_ports(self, now: float | None = None) -> list[str]:
        """Drop reservations closed for longer than a day; return their proxy names."""
        if now is None:
            now = time.monotonic()
        with self._lock:
            expired = [
                name
                for name, ctx in self._reserved.items()
                if ctx.closed and now - ctx.update_time > MAX_PORT_RESERVED_DURATION
            ]
            for name in expired:
                del self._reserved[name]
        return expired

    def close(self) -> None:
        """Stop the background reservation cleaner."""
        self._stop.set()
        if self._cleaner is not None and self._cleaner is not threading.current_thread():
            self._cleaner.join()

    def _take(self, port: int, name: str, ctx: PortContext) -> int:
        ctx.port = port
        self._used[port] = ctx
        self._reserved[name] = ctx
        self._free.discard(port)
        return port

    def _clean_worker(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.clean_reserved_ports()

    def _is_port_available(self, port: int) -> bool:
        sock_type = socket.SOCK_DGRAM if self.net_type == "udp" else socket.SOCK_STREAM
        host = self.bind_addr or None
        try:
            infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, sock_type, 0, socket.AI_PASSIVE)
        except (OSError, OverflowError):
            return False
        if not infos:
            return False
        family, stype, proto, _, sockaddr = infos[0]
        try:
            with socket.socket(family, stype, proto) as sock:
                if stype == socket.SOCK_STREAM:
                    if os.name != "nt":
                        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                    sock.bind(sockaddr)
                    sock.listen()
                else:
                    sock.bind(sockaddr)
        except (OSError, OverflowError):
            return False
        return True
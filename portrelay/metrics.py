"""Server metrics hooks and the process-wide metrics sink."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import Counter


class ServerMetrics(ABC):
    """Receives events about clients, proxies, connections and traffic."""

    @abstractmethod
    def new_client(self) -> None:
        """A client logged in."""

    @abstractmethod
    def close_client(self) -> None:
        """A client went away."""

    @abstractmethod
    def new_proxy(self, name: str, proxy_type: str) -> None:
        """A proxy was registered."""

    @abstractmethod
    def close_proxy(self, name: str, proxy_type: str) -> None:
        """A proxy was closed."""

    @abstractmethod
    def open_connection(self, name: str, proxy_type: str) -> None:
        """A user connection was opened through a proxy."""

    @abstractmethod
    def close_connection(self, name: str, proxy_type: str) -> None:
        """A user connection through a proxy was closed."""

    @abstractmethod
    def add_traffic_in(self, name: str, proxy_type: str, traffic_bytes: int) -> None:
        """Bytes flowed into a proxy."""

    @abstractmethod
    def add_traffic_out(self, name: str, proxy_type: str, traffic_bytes: int) -> None:
        """Bytes flowed out of a proxy."""


class NoopServerMetrics(ServerMetrics):
    """Metrics sink that records nothing but how many events of each kind it dropped."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.discarded: Counter[str] = Counter()

    def _discard(self, event: str) -> None:
        with self._lock:
            self.discarded[event] += 1

    def new_client(self) -> None:
        self._discard("new_client")

    def close_client(self) -> None:
        self._discard("close_client")

    def new_proxy(self, name: str, proxy_type: str) -> None:
        self._discard("new_proxy")

    def close_proxy(self, name: str, proxy_type: str) -> None:
        self._discard("close_proxy")

    def open_connection(self, name: str, proxy_type: str) -> None:
        self._discard("open_connection")

    def close_connection(self, name: str, proxy_type: str) -> None:
        self._discard("close_connection")

    def add_traffic_in(self, name: str, proxy_type: str, traffic_bytes: int) -> None:
        self._discard("add_traffic_in")

    def add_traffic_out(self, name: str, proxy_type: str, traffic_bytes: int) -> None:
        self._discard("add_traffic_out")


_lock = threading.Lock()
_registered = False
_server: ServerMetrics = NoopServerMetrics()


def register(metrics: ServerMetrics) -> None:
    """Install the process-wide metrics sink; only the first call has effect."""
    global _registered, _server
    with _lock:
        if _registered:
            return
        _registered = True
        _server = metrics


def current() -> ServerMetrics:
    """Return the process-wide metrics sink."""
    return _server
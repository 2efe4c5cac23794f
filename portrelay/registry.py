"""Name-indexed registries for proxies and client controls."""

from __future__ import annotations

import threading
from typing import Generic, Protocol, TypeVar


class ProxyNameInUse(Exception):
    """A proxy with this name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"proxy name [{name}] is already in use")
        self.name = name


class Replaceable(Protocol):
    """A control that can be told another control took over its run id."""

    def replaced(self, new_control: object) -> None: ...


P = TypeVar("P")
C = TypeVar("C", bound=Replaceable)


class ProxyManager(Generic[P]):
    """All running proxies, indexed by proxy name."""

    def __init__(self) -> None:
        self._proxies: dict[str, P] = {}
        self._lock = threading.RLock()

    def add(self, name: str, proxy: P) -> None:
        """Register ``proxy`` under ``name``; raise if the name is taken."""
        with self._lock:
            if name in self._proxies:
                raise ProxyNameInUse(name)
            self._proxies[name] = proxy

    def delete(self, name: str) -> None:
        """Forget the proxy called ``name`` if there is one."""
        with self._lock:
            self._proxies.pop(name, None)

    def get(self, name: str) -> P | None:
        """Return the proxy called ``name``, or None."""
        with self._lock:
            return self._proxies.get(name)


class ControlManager(Generic[C]):
    """All client controls, indexed by run id."""

    def __init__(self) -> None:
        self._controls: dict[str, C] = {}
        self._lock = threading.RLock()

    def add(self, run_id: str, control: C) -> C | None:
        """Store ``control``; any previous control is told it was replaced and returned."""
        with self._lock:
            old = self._controls.get(run_id)
            if old is not None:
                old.replaced(control)
            self._controls[run_id] = control
            return old

    def delete(self, run_id: str, control: C) -> None:
        """Remove the entry for ``run_id`` only if it still holds ``control``."""
        with self._lock:
            if self._controls.get(run_id) is control:
                del self._controls[run_id]

    def get(self, run_id: str) -> C | None:
        """Return the control for ``run_id``, or None."""
        with self._lock:
            return self._controls.get(run_id)
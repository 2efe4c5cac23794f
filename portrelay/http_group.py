"""Load balancing of HTTP routes shared by several proxies."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from portrelay.errors import GroupAuthFailed, GroupError, GroupParamsInvalid, ProxyRepeated

CreateConnFn = Callable[[str], Any]


@dataclass
class RouteConfig:
    """How requests for one domain and location reach a proxy."""

    domain: str = ""
    location: str = ""
    rewrite_host: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    username: str = ""
    password: str = ""
    create_conn_fn: CreateConnFn | None = None


class VhostRouter(Protocol):
    """The routing table an HTTP reverse proxy consults."""

    def add(self, domain: str, location: str, route_config: RouteConfig) -> None: ...

    def delete(self, domain: str, location: str) -> None: ...


def http_group_index(group: str, domain: str, location: str) -> str:
    """Key under which a group for this domain and location is stored."""
    return f"{group}_{domain}_{location}"


class HTTPGroup:
    """Proxies sharing one route; connections go to them in turn."""

    def __init__(self, router: VhostRouter) -> None:
        self._router = router
        self.group = ""
        self.group_key = ""
        self.domain = ""
        self.location = ""
        self._create_funcs: dict[str, CreateConnFn | None] = {}
        self._names: list[str] = []
        self._index = 0
        self._lock = threading.RLock()

    @property
    def proxy_names(self) -> list[str]:
        with self._lock:
            return list(self._names)

    def register(
        self, proxy_name: str, group: str, group_key: str, route_config: RouteConfig
    ) -> None:
        """Add a proxy to the group; the first one installs the shared route."""
        with self._lock:
            if not self._create_funcs:
                shared = replace(route_config, create_conn_fn=self.create_conn)
                self._router.add(route_config.domain, route_config.location, shared)
                self.group = group
                self.group_key = group_key
                self.domain = route_config.domain
                self.location = route_config.location
            else:
                if (
                    self.group != group
                    or self.domain != route_config.domain
                    or self.location != route_config.location
                ):
                    raise GroupParamsInvalid()
                if self.group_key != group_key:
                    raise GroupAuthFailed()
            if proxy_name in self._create_funcs:
                raise ProxyRepeated()
            self._create_funcs[proxy_name] = route_config.create_conn_fn
            self._names.append(proxy_name)

    def unregister(self, proxy_name: str) -> bool:
        """Remove a proxy; return True, and drop the route, when the group is empty."""
        with self._lock:
            self._create_funcs.pop(proxy_name, None)
            if proxy_name in self._names:
                self._names.remove(proxy_name)
            if not self._create_funcs:
                self._router.delete(self.domain, self.location)
                return True
            return False

    def create_conn(self, remote_addr: str) -> Any:
        """Open a connection through the next proxy in turn."""
        with self._lock:
            self._index += 1
            fn = None
            if self._names:
                name = self._names[self._index % len(self._names)]
                fn = self._create_funcs.get(name)
            group, domain, location = self.group, self.domain, self.location
        if fn is None:
            raise GroupError(
                f"no CreateConnFunc for http group [{group}], "
                f"domain [{domain}], location [{location}]"
            )
        return fn(remote_addr)


class HTTPGroupController:
    """All HTTP groups, indexed by group, domain and location."""

    def __init__(self, vhost_router: VhostRouter) -> None:
        self._router = vhost_router
        self._groups: dict[str, HTTPGroup] = {}
        self._lock = threading.Lock()

    def __contains__(self, index_key: object) -> bool:
        with self._lock:
            return index_key in self._groups

    def register(
        self, proxy_name: str, group: str, group_key: str, route_config: RouteConfig
    ) -> None:
        """Add a proxy to the group for its route, creating the group if needed."""
        key = http_group_index(group, route_config.domain, route_config.location)
        with self._lock:
            http_group = self._groups.get(key)
            if http_group is None:
                http_group = HTTPGroup(self._router)
                self._groups[key] = http_group
        http_group.register(proxy_name, group, group_key, route_config)

    def unregister(self, proxy_name: str, group: str, domain: str, location: str) -> None:
        """Remove a proxy from its group, dropping the group once it is empty."""
        key = http_group_index(group, domain, location)
        with self._lock:
            http_group = self._groups.get(key)
            if http_group is None:
                return
            if http_group.unregister(proxy_name):
                del self._groups[key]
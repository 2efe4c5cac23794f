# portrelay

Building blocks for the server side of a reverse tunnelling proxy, where
clients behind NAT register proxies with a public server. The package keeps
track of which public ports belong to which proxy, lets several proxies share
one port, route or multiplexed domain, keeps registries of proxies and client
controls, and holds a bounded pool of work connections per client.

The package has no third-party dependencies.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `portrelay.ports`

`PortManager(net_type, bind_addr, allow_ports=None, *, clean_interval=3600.0)`
hands out `"tcp"` or `"udp"` ports from an allow-list, or from the whole range
1–65535 when the list is empty. Before a port is given out, the manager checks
that it can actually bind it on `bind_addr`.

- `acquire(name, port)` gives `port` to the proxy `name` and returns it. With
  `port == 0` the proxy first gets back the port it last held, if that port can
  still be bound; otherwise up to five random free ports are tried. Failures
  raise `PortAlreadyUsed`, `PortNotAllowed`, `PortUnavailable` or
  `NoAvailablePort`, all subclasses of `PortError`.
- `release(port)` returns a port to the free set and marks its reservation as
  closed; the reservation itself is kept.
- `clean_reserved_ports(now=None)` drops reservations that have been closed for
  more than 24 hours (times from `time.monotonic()`) and returns the proxy
  names it dropped. A background thread calls it every `clean_interval`
  seconds; pass `clean_interval=None` to do without the thread.
- `close()` stops the background thread. The manager is also a context manager.

`PortContext` records the holder, port, closed flag and last update time of
each allocation.

### `portrelay.tcp_group`

`TCPGroupController(port_manager)` lets several proxies share one remote TCP
port. `listen(proxy_name, group, group_key, addr, port)` returns a
`(GroupListener, real_port)` pair. The first member of a group acquires the
port from the `PortManager` and opens the listening socket; later members must
give the same group name and address (`GroupParamsInvalid`), the same port
(`GroupDifferentPort`) and the same group key (`GroupAuthFailed`).

Each `GroupListener.accept()` returns the next connection taken from the shared
socket; every connection goes to exactly one member. `close()` leaves the
group and makes that listener's `accept()` raise `ListenerClosed`. When the
last member leaves, the socket is closed, the port is released and the group
is removed from the controller. `remove_group(group)` forgets a group, and
`group in controller` tells whether one exists.

### `portrelay.http_group`

`HTTPGroupController(vhost_router)` balances HTTP traffic for one domain and
location across the proxies of a group. The router is any object with
`add(domain, location, route_config)` and `delete(domain, location)`.

- `register(proxy_name, group, group_key, route_config)` adds a proxy. The first
  member installs a copy of its `RouteConfig` on the router whose
  `create_conn_fn` is the group's own `HTTPGroup.create_conn`. Later members
  must match group, domain and location (`GroupParamsInvalid`) and the group
  key (`GroupAuthFailed`); registering the same proxy twice raises
  `ProxyRepeated`.
- `unregister(proxy_name, group, domain, location)` removes a proxy; when the
  group becomes empty the route is deleted from the router and the group is
  dropped.

`HTTPGroup.create_conn(remote_addr)` calls the members' `create_conn_fn` in
turn (round-robin) and raises `GroupError` when there is no member to call.
`http_group_index(group, domain, location)` gives the key groups are stored
under.

### `portrelay.tcpmux_group`

`TCPMuxGroupController(muxer)` does for HTTP CONNECT multiplexed domains what
the TCP groups do for ports. The muxer is any object whose
`listen(route_config)` returns a listener with `accept()`, `close()` and an
`addr`. `listen(multiplexer, group, group_key, domain)` supports the
multiplexer `"httpconnect"` (`HTTP_CONNECT_TCP_MULTIPLEXER`) and raises
`ValueError` for any other. Members must agree on group and domain
(`GroupParamsInvalid`) and group key (`GroupAuthFailed`). The returned
`GroupListener` behaves as in `tcp_group`; the last member to close it closes
the route's listener and drops the group.

### `portrelay.registry`

- `ProxyManager`: `add(name, proxy)` (a name already taken raises
  `ProxyNameInUse`), `delete(name)`, `get(name)` returning the proxy or `None`.
- `ControlManager`: `add(run_id, control)` stores a control; if one was already
  stored under that run id, its `replaced(new_control)` is called and it is
  returned. `delete(run_id, control)` removes the entry only if it still holds
  that very control. `get(run_id)` returns the control or `None`.

### `portrelay.workpool`

`WorkConnPool(pool_count, request_work_conn, timeout)` holds up to
`pool_count + 10` work connections. `request_work_conn` is called to ask the
client for one more connection.

- `start()` asks for `pool_count` connections.
- `register(conn)` adds a connection; it raises `PoolFull` when the pool is at
  capacity and `ControlClosed` once the pool is closed.
- `get()` takes a waiting connection, or asks for one and waits up to `timeout`
  seconds (`WorkConnTimeout`). After handing out a connection it asks for a
  replacement. It raises `ControlClosed` when the pool is closed or
  `request_work_conn` fails.
- `close()` closes the pool and every connection still waiting in it. The pool
  is also a context manager, and `len(pool)` is the number waiting.

`effective_pool_count(requested, max_pool_count)` caps the pool size a client
asks for.

### `portrelay.metrics`

`ServerMetrics` is an abstract base class with hooks for clients, proxies,
connections and traffic. `NoopServerMetrics`, the default sink, records
nothing except a count of dropped events per kind in its `discarded` counter.
`register(metrics)` installs a sink for the whole process; only the first call
has any effect. `current()` returns the sink in use.

### `portrelay.errors`

The group errors `GroupAuthFailed`, `GroupParamsInvalid`, `ListenerClosed`,
`GroupDifferentPort` and `ProxyRepeated`, all subclasses of `GroupError`.

## Example

```python
from portrelay.ports import PortManager, PortNotAllowed

with PortManager("tcp", "127.0.0.1", allow_ports={20000, 20001}) as manager:
    port = manager.acquire("web", 20000)
    try:
        manager.acquire("other", 25003)
    except PortNotAllowed:
        print("25003 is not on the allow-list")
    manager.release(port)
```

## What this package does not do

It is a library of server-side parts, not a running server. There is no
command to start, no listener for client logins, no message protocol for the
control and work connections, no authentication, no HTTP reverse proxy or
virtual-host router, no HTTP CONNECT multiplexer, no UDP forwarding and no
dashboard. Routers and multiplexers are supplied by the caller to
`HTTPGroupController` and `TCPMuxGroupController`.
"""Errors raised when proxies join or leave a load-balancing group."""

from __future__ import annotations


class GroupError(Exception):
    """Base class for group errors."""

    default_message = "group error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(self.default_message if message is None else message)


class GroupAuthFailed(GroupError):
    """The group key does not match the key the group was created with."""

    default_message = "group auth failed"


class GroupParamsInvalid(GroupError):
    """The group name, address or domain differs from the group's own."""

    default_message = "group params invalid"


class ListenerClosed(GroupError):
    """The group listener has been closed."""

    default_message = "group listener closed"


class GroupDifferentPort(GroupError):
    """A proxy asked for a remote port other than the group's port."""

    default_message = "group should have same remote port"


class ProxyRepeated(GroupError):
    """The proxy is already a member of the group."""

    default_message = "group proxy repeated"
"""Port allocation, proxy groups, registries, work-connection pools and metrics hooks for the server side of a reverse tunnelling proxy."""

__version__ = "0.1.0"

__all__ = [
    "errors",
    "metrics",
    "ports",
    "registry",
    "http_group",
    "tcp_group",
    "tcpmux_group",
    "workpool",
]
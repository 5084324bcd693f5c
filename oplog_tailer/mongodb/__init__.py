from .connection import ConnectionMode, connect_upstream, connection_config, parse_host_spec

__all__ = [
    "ConnectionMode",
    "connect_upstream",
    "connection_config",
    "parse_host_spec",
]

"""
Upstream MongoDB connections for the oplog tailer.

One connection per tailer, opened in one of four modes:

- ``replica-set``: replica set aware client over all seeds, reading from
  secondaries when one is available.
- ``secondary``: direct connection to a single member that must be a
  secondary of a named replica set.
- ``direct-slave``: like ``secondary``, but the member may be the primary.
- ``pre-existing-handle``: a client the caller already opened.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pymongo
from pymongo import ReadPreference

from ..connectors.cdc.errors import ConfigError, TopologyError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 27017

# Await-data reads block for long stretches; a normal socket timeout would
# abort an idle tail.
DEFAULT_OP_TIMEOUT_SECONDS = 86400


class ConnectionMode(str, Enum):
    """How the tailer reaches its upstream."""
    REPLICA_SET = "replica-set"
    SECONDARY = "secondary"
    DIRECT_SLAVE = "direct-slave"
    PRE_EXISTING_HANDLE = "pre-existing-handle"

    @classmethod
    def _missing_(cls, value):
        # Short names used by older configurations
        aliases = {
            "replset": cls.REPLICA_SET,
            "slave": cls.SECONDARY,
            "direct": cls.DIRECT_SLAVE,
            "existing": cls.PRE_EXISTING_HANDLE,
        }
        if not isinstance(value, str):
            return None
        name = value.lower().replace("_", "-")
        for member in cls:
            if member.value == name:
                return member
        return aliases.get(name)


def as_mode(mode: Union[ConnectionMode, str]) -> ConnectionMode:
    """Coerce a mode name into a ConnectionMode, raising ConfigError if unknown."""
    try:
        return ConnectionMode(mode)
    except ValueError as e:
        raise ConfigError(f"Invalid connection type: {mode!r}") from e


def default_connection_options(op_timeout_seconds: int = DEFAULT_OP_TIMEOUT_SECONDS) -> Dict[str, Any]:
    """Options every upstream client is opened with."""
    return {"socketTimeoutMS": op_timeout_seconds * 1000}


def _get_client(*args: Any, **kwargs: Any) -> pymongo.MongoClient:
    """Create a MongoClient. Caller is responsible for closing it.

    Looking up pymongo.MongoClient at call time allows tests to monkeypatch
    it and have our code pick it up.
    """
    return pymongo.MongoClient(*args, **kwargs)


def parse_host_spec(host_spec: str) -> Tuple[str, int]:
    """Split ``host:port``, filling in 127.0.0.1 and 27017 for missing halves."""
    host, _, port = str(host_spec).partition(":")
    host = host or DEFAULT_HOST
    if not port:
        return host, DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError as e:
        raise ConfigError(f"Invalid port in upstream {host_spec!r}") from e


def connection_config(client: Any) -> Dict[str, Any]:
    """Ask the upstream who it is (one ``hello`` round trip)."""
    return client["admin"].command("hello", read_preference=ReadPreference.SECONDARY_PREFERRED)


def _is_primary(config: Dict[str, Any]) -> bool:
    return bool(config.get("isWritablePrimary", config.get("ismaster", False)))


def connect_upstream(
    upstreams: Sequence[Any],
    mode: Union[ConnectionMode, str],
    connection_options: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Open and validate the upstream connection.

    Args:
        upstreams: Seed addresses, a single ``host:port`` spec, or a single
            existing client, depending on mode
        mode: Connection mode
        connection_options: Extra MongoClient keyword options, merged over
            the defaults

    Returns:
        A connected client

    Raises:
        ConfigError: Unknown mode, wrong number of upstreams, or an existing
            handle that is not a client
        TopologyError: Node is primary in ``secondary`` mode, or is not part
            of a replica set
        pymongo.errors.ConnectionFailure: No member could be reached
    """
    mode = as_mode(mode)
    upstreams = list(upstreams)
    opts = default_connection_options()
    opts.update(connection_options or {})

    if mode is ConnectionMode.REPLICA_SET:
        return _connect_replica_set(upstreams, opts)
    if mode in (ConnectionMode.SECONDARY, ConnectionMode.DIRECT_SLAVE):
        return _connect_direct(upstreams, opts, allow_primary=mode is ConnectionMode.DIRECT_SLAVE)
    return _wrap_existing(upstreams)


def _connect_replica_set(upstreams: List[str], opts: Dict[str, Any]) -> pymongo.MongoClient:
    if not upstreams:
        raise ConfigError("At least one seed address is required for a replica set connection")

    opts = {"read_preference": ReadPreference.SECONDARY_PREFERRED, **opts}
    client = _get_client(upstreams, **opts)
    try:
        # MongoClient connects lazily; fail here if no member is reachable.
        # Database.command defaults to the primary, so a secondary must do.
        client["admin"].command("ping", read_preference=ReadPreference.SECONDARY_PREFERRED)
    except Exception:
        client.close()
        raise

    logger.info(
        "Connected to replica set",
        extra={"upstreams": upstreams, "mode": ConnectionMode.REPLICA_SET.value}
    )
    return client


def _connect_direct(upstreams: List[str], opts: Dict[str, Any], allow_primary: bool) -> pymongo.MongoClient:
    if len(upstreams) != 1:
        raise ConfigError(
            "When connecting directly to a mongo instance, must provide a single upstream"
        )
    host, port = parse_host_spec(upstreams[0])

    opts = {
        "directConnection": True,
        "read_preference": ReadPreference.SECONDARY_PREFERRED,
        **opts,
    }
    client = _get_client(host, port, **opts)
    try:
        config = connection_config(client)
        if not allow_primary and _is_primary(config):
            raise TopologyError(
                f"Server at {host}:{port} is the primary -- if you're ok with that, "
                f"connect with mode {ConnectionMode.DIRECT_SLAVE.value!r} rather than "
                f"{ConnectionMode.SECONDARY.value!r}"
            )
        if not config.get("setName"):
            raise TopologyError(f"Server at {host}:{port} is not running as a replica set")
    except Exception:
        client.close()
        raise

    logger.info(
        f"Connected directly to {host}:{port}",
        extra={
            "host": host,
            "port": port,
            "replica_set": config.get("setName"),
            "primary": _is_primary(config),
        }
    )
    return client


def _wrap_existing(upstreams: List[Any]) -> Any:
    if len(upstreams) != 1 or not callable(getattr(upstreams[0], "get_database", None)):
        raise ConfigError(
            "Must pass in a single existing MongoClient with "
            f"{ConnectionMode.PRE_EXISTING_HANDLE.value!r}"
        )
    return upstreams[0]

"""
Follow a MongoDB replica set oplog as an ordered, resumable stream of records.
"""

from .connectors.cdc import (
    Tailer,
    TailerState,
    TailerError,
    ConfigError,
    TopologyError,
    AlreadyTailingError,
    LogPosition,
    Namespace,
    build_query,
    position_of,
    time_of,
    encode_position,
    decode_position,
)
from .mongodb.connection import ConnectionMode

__version__ = "0.1.0"

__all__ = [
    "Tailer",
    "TailerState",
    "TailerError",
    "ConfigError",
    "TopologyError",
    "AlreadyTailingError",
    "ConnectionMode",
    "LogPosition",
    "Namespace",
    "build_query",
    "position_of",
    "time_of",
    "encode_position",
    "decode_position",
]

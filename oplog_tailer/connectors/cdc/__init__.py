"""
CDC (Change Data Capture) module for MongoDB oplog tailing.
"""

from .errors import TailerError, ConfigError, TopologyError, AlreadyTailingError
from .position import (
    LogPosition, position_of, time_of, encode_position, decode_position, position_before
)
from .query import Namespace, build_query
from .oplog_tailer import Tailer, TailerState

__all__ = [
    "Tailer",
    "TailerState",
    "TailerError",
    "ConfigError",
    "TopologyError",
    "AlreadyTailingError",
    "LogPosition",
    "position_of",
    "time_of",
    "encode_position",
    "decode_position",
    "position_before",
    "Namespace",
    "build_query",
]

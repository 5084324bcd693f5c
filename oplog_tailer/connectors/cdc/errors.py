"""
Exceptions raised by the oplog tailer.

Driver failures (``pymongo.errors.ConnectionFailure`` and friends) are not
wrapped; they reach the caller unmodified.
"""


class TailerError(Exception):
    """Base exception for oplog tailer errors."""
    pass


class ConfigError(TailerError):
    """Invalid connection mode, upstream list, filter or position text."""
    pass


class TopologyError(TailerError):
    """Upstream node is not the kind of replica set member that was asked for."""
    pass


class AlreadyTailingError(TailerError):
    """tail() was called while a cursor is still open."""
    pass

"""
Oplog positions.

A position is the ``ts`` field of an oplog entry, a ``bson.Timestamp`` made of
seconds since the epoch and an ordinal within that second. Timestamps compare
lexicographically on ``(time, inc)``.
"""

from datetime import datetime, timezone
from numbers import Real
from typing import Any, Mapping, Optional, Union

from bson import Timestamp

from .errors import ConfigError

LogPosition = Timestamp

POSITION_FIELD = "ts"
NAMESPACE_FIELD = "ns"


def position_of(record: Optional[Mapping[str, Any]]) -> Optional[Timestamp]:
    """Return the position of an oplog record, or None if there is no record."""
    if record is None:
        return None
    return record[POSITION_FIELD]


def time_of(record: Optional[Mapping[str, Any]]) -> Optional[datetime]:
    """Return the UTC wall-clock time a record was written, or None."""
    if record is None:
        return None
    return datetime.fromtimestamp(record[POSITION_FIELD].time, tz=timezone.utc)


def encode_position(position: Timestamp) -> str:
    """
    Encode a position as ``"<seconds>:<ordinal>"``.

    This is the text form callers persist between runs and pass back to
    :func:`decode_position`.
    """
    if not isinstance(position, Timestamp):
        raise TypeError(f"Expected a bson.Timestamp, got {type(position).__name__}")
    return f"{position.time}:{position.inc}"


def decode_position(text: str) -> Timestamp:
    """
    Decode the ``"<seconds>:<ordinal>"`` form produced by :func:`encode_position`.

    A bare ``"<seconds>"`` is read as ordinal 0.

    Raises:
        ConfigError: If the text is not a valid position
    """
    seconds, _, ordinal = str(text).strip().partition(":")
    try:
        return Timestamp(int(seconds), int(ordinal or 0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid oplog position {text!r}: {e}") from e


def _epoch_seconds(when: Union[datetime, Real]) -> float:
    if isinstance(when, datetime):
        # Naive datetimes are taken as UTC, like the oplog itself
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when.timestamp()
    if isinstance(when, Real) and not isinstance(when, bool):
        return float(when)
    raise TypeError(f"Expected a datetime or epoch seconds, got {type(when).__name__}")


def position_before(when: Union[datetime, Real]) -> Timestamp:
    """
    Exclusive upper bound covering every entry written at or before ``when``.

    The bound is the first position of the following second, so every ordinal
    inside ``when``'s own second is still included.
    """
    return Timestamp(int(_epoch_seconds(when)) + 1, 0)

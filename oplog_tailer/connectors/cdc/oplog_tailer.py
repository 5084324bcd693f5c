"""
Oplog tailing with tailable cursors.

Follows ``local.oplog.rs`` of a replica set member and hands each entry to a
caller supplied callback, in oplog order:

1. Connect to the upstream (see ``mongodb.connection``)
2. Optionally find a start position with ``most_recent_position``
3. ``tail()`` opens a tailable, await-data cursor after that position
4. ``stream()`` delivers records until stopped, limited or caught up
5. ``close()`` releases the cursor; ``tail()`` may be called again

Positions are never persisted here. Resuming after a failure is up to the
caller, using the last position it saw.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from bson import Timestamp
from prometheus_client import Counter, Gauge
from pymongo import CursorType
from pymongo.collection import Collection

from ...mongodb.connection import ConnectionMode, as_mode, connect_upstream, connection_config
from .errors import AlreadyTailingError, TailerError
from .position import POSITION_FIELD, position_before, position_of, time_of
from .query import NamespaceLike, build_query

logger = logging.getLogger(__name__)

oplog_records_streamed = Counter(
    'oplog_tailer_records_total',
    'Total oplog records delivered to stream callbacks',
    ['oplog']
)

oplog_stream_calls = Counter(
    'oplog_tailer_stream_calls_total',
    'Total stream() calls',
    ['oplog']
)

oplog_lag_seconds = Gauge(
    'oplog_tailer_lag_seconds',
    'Age of the last delivered oplog record',
    ['oplog']
)

Record = Dict[str, Any]


class TailerState(str, Enum):
    IDLE = "idle"
    TAILING = "tailing"
    STREAMING = "streaming"


class Tailer:
    """
    Tail the oplog of one upstream.

    Thread Safety: NOT thread-safe. One thread drives a tailer; ``stop()`` may
    be called from the stream callback or a signal handler.

    Example:
        >>> tailer = Tailer(["db1:27017", "db2:27017"], "replica-set")
        >>> tailer.tail(from_position=tailer.most_recent_position())
        >>> while tailer.tailing():
        ...     tailer.stream(handle_record)
        >>> tailer.close()
    """

    def __init__(
        self,
        upstreams: Sequence[Any],
        mode: Union[ConnectionMode, str],
        oplog: str = "oplog.rs",
        connection_options: Optional[Dict[str, Any]] = None
    ):
        """
        Connect to the upstream.

        Args:
            upstreams: Seed addresses, one ``host:port`` spec, or one existing
                client, depending on mode
            mode: Connection mode
            oplog: Oplog collection name in the ``local`` database
            connection_options: Extra MongoClient options

        Raises:
            ConfigError: Invalid mode or upstreams
            TopologyError: Upstream is not an acceptable replica set member
            pymongo.errors.ConnectionFailure: Upstream unreachable
        """
        self._upstreams = list(upstreams)
        self._mode = as_mode(mode)
        self._oplog = oplog
        self._connection_options = dict(connection_options or {})

        self._cursor = None
        self._session = None
        self._lookahead: Optional[Record] = None
        self._stop_requested = False
        self._state = TailerState.IDLE

        self._upstream_conn = connect_upstream(
            self._upstreams, self._mode, self._connection_options
        )
        self._owns_connection = self._mode is not ConnectionMode.PRE_EXISTING_HANDLE

    @classmethod
    def from_settings(cls, settings, upstreams: Optional[Sequence[Any]] = None) -> "Tailer":
        """Build a tailer from TailerSettings, optionally overriding its upstreams."""
        return cls(
            upstreams if upstreams is not None else settings.upstreams,
            settings.mode,
            oplog=settings.oplog,
            connection_options=settings.connection_options(),
        )

    @property
    def upstream_conn(self) -> Any:
        return self._upstream_conn

    @property
    def oplog(self) -> str:
        return self._oplog

    @property
    def mode(self) -> ConnectionMode:
        return self._mode

    @property
    def state(self) -> TailerState:
        return self._state

    @property
    def oplog_collection(self) -> Collection:
        return self._upstream_conn["local"][self._oplog]

    def connection_config(self) -> Dict[str, Any]:
        """Return the upstream's ``hello`` response."""
        return connection_config(self._upstream_conn)

    def most_recent_position(self, before_time=None) -> Optional[Timestamp]:
        """
        Position of the newest oplog entry, to pass to ``tail(from_position=...)``.

        If before_time (datetime or epoch seconds) is given, returns the
        newest position at or before that time. None if nothing matches.
        """
        return position_of(self.latest_oplog_entry(before_time))

    def latest_oplog_entry(self, before_time=None) -> Optional[Record]:
        query: Dict[str, Any] = {}
        if before_time is not None:
            query = {POSITION_FIELD: {"$lt": position_before(before_time)}}

        return self.oplog_collection.find_one(query, sort=[("$natural", -1)])

    def tail(
        self,
        from_position: Optional[Timestamp] = None,
        filter: Optional[Mapping[str, Any]] = None,
        namespace: Optional[NamespaceLike] = None,
        dont_wait: bool = False,
        driver_options: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Open a tailable cursor on the oplog.

        Args:
            from_position: Start strictly after this position. None scans
                from the start of the oplog.
            filter: Extra query clauses
            namespace: Only entries of this (db, collection); applied with
                from_position
            dont_wait: Do not block waiting for new data on each fetch
            driver_options: Extra ``Collection.find`` keyword arguments

        Raises:
            AlreadyTailingError: A cursor is already open; close() first
            ConfigError: filter is not a mapping
            TypeError: from_position is not a bson.Timestamp
        """
        if self._cursor is not None:
            raise AlreadyTailingError("Already tailing the oplog!")

        query = build_query(from_position, filter, namespace)

        find_opts: Dict[str, Any] = {"no_cursor_timeout": True}
        find_opts.update(driver_options or {})
        find_opts["cursor_type"] = CursorType.TAILABLE if dont_wait else CursorType.TAILABLE_AWAIT
        # The replay hint only helps when scanning from a ts bound
        if POSITION_FIELD in query:
            find_opts["oplog_replay"] = True

        logger.debug(
            f"Starting oplog stream from {from_position or 'start'}",
            extra={
                "oplog": self._oplog,
                "from_position": str(from_position) if from_position else None,
                "await_data": not dont_wait,
            }
        )

        if find_opts.get("no_cursor_timeout") and "session" not in find_opts:
            # pymongo only honours no_cursor_timeout inside an explicit session
            self._session = self._upstream_conn.start_session()
            find_opts["session"] = self._session

        try:
            self._cursor = self.oplog_collection.find(query, **find_opts)
        except Exception:
            self._end_session()
            raise
        self._state = TailerState.TAILING

    def tailing(self) -> bool:
        """False once a stop was requested and no stream() is still running."""
        return not self._stop_requested or self._state is TailerState.STREAMING

    def stream(self, callback: Callable[[Record], None], limit: Optional[int] = None) -> bool:
        """
        Deliver oplog records to callback (blocking call).

        Runs until stop() is requested, ``limit`` records were delivered, or
        the cursor has nothing more to return right now. Each fetch blocks
        while the cursor awaits data. A callback in progress always finishes;
        stop and limit are checked between records.

        Args:
            callback: Called synchronously with each record
            limit: Maximum number of records to deliver in this call

        Returns:
            True if more data is pending, so another stream() call is worthwhile

        Raises:
            TailerError: tail() has not been called
        """
        if self._cursor is None:
            raise TailerError("Not tailing the oplog; call tail() first")

        oplog_stream_calls.labels(oplog=self._oplog).inc()
        delivered = 0
        self._state = TailerState.STREAMING
        try:
            while (
                not self._stop_requested
                and (limit is None or delivered < limit)
                and self._has_next()
            ):
                record = self._lookahead
                self._lookahead = None
                callback(record)
                delivered += 1
                self._record_delivered(record)
        finally:
            # close() from the callback leaves the tailer idle
            if self._cursor is not None:
                self._state = TailerState.TAILING

        if self._cursor is None:
            return False
        if self._stop_requested:
            # Do not block on another fetch once asked to stop
            return self._lookahead is not None or bool(getattr(self._cursor, "alive", False))
        return self._has_next()

    def stop(self) -> None:
        """Ask the current or next stream() loop to return. Does not close the cursor."""
        if not self._stop_requested:
            logger.info("Stop requested for oplog tailer", extra={"oplog": self._oplog})
        self._stop_requested = True

    def close(self) -> None:
        """Close the cursor, if any, and return to idle."""
        if self._cursor is not None:
            self._cursor.close()
            logger.debug("Closed oplog cursor", extra={"oplog": self._oplog})
        self._end_session()
        self._cursor = None
        self._lookahead = None
        self._stop_requested = False
        self._state = TailerState.IDLE

    def disconnect(self) -> None:
        """close(), then close the upstream client if this tailer opened it."""
        self.close()
        if self._owns_connection and self._upstream_conn is not None:
            self._upstream_conn.close()
            logger.info("Closed upstream connection", extra={"mode": self._mode.value})
        self._upstream_conn = None

    def __enter__(self) -> "Tailer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def _end_session(self) -> None:
        if self._session is not None:
            self._session.end_session()
        self._session = None

    def _has_next(self) -> bool:
        """Fetch one record ahead; this is where await-data cursors block."""
        if self._cursor is None:
            return False
        if self._lookahead is None:
            try:
                self._lookahead = self._cursor.next()
            except StopIteration:
                return False
        return True

    def _record_delivered(self, record: Record) -> None:
        oplog_records_streamed.labels(oplog=self._oplog).inc()
        if POSITION_FIELD in record:
            lag = time.time() - time_of(record).timestamp()
            oplog_lag_seconds.labels(oplog=self._oplog).set(max(0.0, lag))

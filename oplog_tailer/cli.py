"""
Command line oplog tailer.

Prints each oplog entry as one JSON line. Starts after the newest entry by
default, so only new writes are shown; ``--from``, ``--before`` and
``--from-start`` choose another start position.

    python -m oplog_tailer --upstream db1:27017 --mode secondary --follow
"""

import argparse
import json
import logging
import signal
import sys
import time
from typing import Any, Dict, List, Optional, TextIO

from pymongo.errors import PyMongoError

from .config.settings import TailerSettings, get_settings
from .connectors.cdc.errors import TailerError
from .connectors.cdc.oplog_tailer import Tailer
from .connectors.cdc.position import decode_position, encode_position
from .connectors.cdc.query import Namespace
from .core.utils.bson_convert import bson_safe
from .mongodb.connection import ConnectionMode
from .utils.logging import CorrelationContext, configure_logging

logger = logging.getLogger(__name__)


def build_parser(settings: TailerSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oplog-tail",
        description="Tail a MongoDB oplog and print entries as JSON lines"
    )
    parser.add_argument(
        "--upstream",
        action="append",
        dest="upstreams",
        help=f"Upstream host:port, repeatable (default: {','.join(settings.upstreams)})"
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ConnectionMode if m is not ConnectionMode.PRE_EXISTING_HANDLE],
        default=settings.mode.value,
        help="Connection mode"
    )
    parser.add_argument("--oplog", default=settings.oplog, help="Oplog collection name")

    start = parser.add_mutually_exclusive_group()
    start.add_argument(
        "--from",
        dest="from_position",
        help="Start strictly after this position (SECONDS:ORDINAL)"
    )
    start.add_argument(
        "--before",
        type=float,
        help="Start after the newest entry at or before this epoch time"
    )
    start.add_argument(
        "--from-start",
        action="store_true",
        help="Replay the whole oplog"
    )

    parser.add_argument("--db", help="Only entries for this database (needs --collection)")
    parser.add_argument("--collection", help="Only entries for this collection")
    parser.add_argument(
        "--dont-wait",
        action="store_true",
        default=settings.dont_wait,
        help="Do not block waiting for new entries on each fetch"
    )
    parser.add_argument("--limit", type=int, help="Stop after this many entries")
    parser.add_argument(
        "--follow",
        action="store_true",
        help="Keep waiting for new entries once caught up"
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=1.0,
        help="Seconds to sleep between empty polls with --follow"
    )
    return parser


def _start_position(tailer: Tailer, args: argparse.Namespace):
    if args.from_position:
        return decode_position(args.from_position)
    if args.from_start:
        return None
    # None on an empty oplog, which tails from the start
    return tailer.most_recent_position(args.before)


def _namespace(args: argparse.Namespace) -> Optional[Namespace]:
    if args.db is None and args.collection is None:
        return None
    if args.db is None:
        raise TailerError("--collection requires --db")
    if args.collection is None:
        raise TailerError("--db requires --collection")
    return Namespace(db=args.db, collection=args.collection)


def run(args: argparse.Namespace, settings: TailerSettings, out: TextIO = sys.stdout) -> int:
    """Tail until stopped, limited, or caught up (without --follow)."""
    upstreams: List[str] = args.upstreams or settings.upstreams
    namespace = _namespace(args)
    written = 0
    last_position = None

    def emit(record: Dict[str, Any]) -> None:
        nonlocal written, last_position
        out.write(json.dumps(bson_safe(record), default=str) + "\n")
        out.flush()
        written += 1
        last_position = record.get("ts")

    with CorrelationContext(), Tailer(
        upstreams,
        args.mode,
        oplog=args.oplog,
        connection_options=settings.connection_options()
    ) as tailer:
        previous_sigint = signal.signal(signal.SIGINT, lambda signum, frame: tailer.stop())
        try:
            from_position = _start_position(tailer, args)
            tailer.tail(
                from_position=from_position,
                namespace=namespace,
                dont_wait=args.dont_wait
            )
            while tailer.tailing():
                remaining = None if args.limit is None else args.limit - written
                if remaining is not None and remaining <= 0:
                    break
                if settings.batch_limit is not None:
                    remaining = settings.batch_limit if remaining is None else min(remaining, settings.batch_limit)
                more = tailer.stream(emit, limit=remaining)
                if not more:
                    if not args.follow:
                        break
                    time.sleep(args.poll_interval)
        finally:
            signal.signal(signal.SIGINT, previous_sigint)

    logger.info(
        f"Printed {written} oplog entries",
        extra={
            "entries": written,
            "last_position": encode_position(last_position) if last_position is not None else None,
        }
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    configure_logging(settings.log_level, settings.log_json)

    try:
        return run(args, settings)
    except (TailerError, TypeError) as e:
        logger.error(f"Invalid tail request: {e}", extra={"error_type": type(e).__name__})
        return 2
    except PyMongoError as e:
        logger.error(f"MongoDB error while tailing: {e}", extra={"error_type": type(e).__name__})
        return 1


if __name__ == "__main__":
    sys.exit(main())

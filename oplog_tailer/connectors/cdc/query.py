"""
Oplog scan query construction.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from bson import Timestamp

from .errors import ConfigError
from .position import NAMESPACE_FIELD, POSITION_FIELD


@dataclass(frozen=True)
class Namespace:
    """A (database, collection) pair, as written to the oplog ``ns`` field."""
    db: str
    collection: str

    def __str__(self) -> str:
        return f"{self.db}.{self.collection}"


NamespaceLike = Union[Namespace, Tuple[str, str]]


def as_namespace(namespace: Optional[NamespaceLike]) -> Optional[Namespace]:
    """Coerce a Namespace or a ``(db, collection)`` tuple into a Namespace."""
    if namespace is None or isinstance(namespace, Namespace):
        return namespace
    try:
        db, collection = namespace
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"namespace must be a Namespace or a (db, collection) pair, got {namespace!r}"
        ) from e
    return Namespace(db=db, collection=collection)


def build_query(
    from_position: Optional[Timestamp] = None,
    filter: Optional[Mapping[str, Any]] = None,
    namespace: Optional[NamespaceLike] = None,
) -> Dict[str, Any]:
    """
    Build the predicate used to scan the oplog.

    Args:
        from_position: Resume position. Exclusive: the entry at this position
            is not matched again.
        filter: Extra query clauses. Copied, never modified.
        namespace: Restrict to one collection. Only applied together with
            ``from_position``; a scan from the start returns ``filter`` as is.

    Returns:
        The query document

    Raises:
        ConfigError: If filter is not a mapping
        TypeError: If from_position is not a bson.Timestamp
    """
    if filter is not None and not isinstance(filter, Mapping):
        raise ConfigError(f"filter must be a mapping, got {type(filter).__name__}")

    query: Dict[str, Any] = dict(filter or {})
    if from_position is None:
        return query

    if not isinstance(from_position, Timestamp):
        raise TypeError(
            f"from_position must be a bson.Timestamp, got {type(from_position).__name__}"
        )

    # Our own bound replaces any ts clause carried in the filter
    query[POSITION_FIELD] = {"$gt": from_position}

    namespace = as_namespace(namespace)
    if namespace is not None:
        query[NAMESPACE_FIELD] = str(namespace)

    return query

"""
BSON to JSON-serializable converter utility.

Converts oplog entries to JSON-serializable Python types for printing.
"""

from bson import ObjectId, Decimal128, Timestamp
from datetime import datetime
import base64
from typing import Any

from ...connectors.cdc.position import encode_position


def bson_safe(value: Any) -> Any:
    """
    Recursively convert BSON types to JSON-serializable Python types.
    
    Handles:
    - Timestamp -> "seconds:ordinal" (same text as encode_position)
    - ObjectId -> str
    - datetime -> ISO string
    - Decimal128 -> str
    - bytes -> base64 string
    - Nested dicts and lists
    
    Example:
        >>> from bson import Timestamp
        >>> bson_safe({"ts": Timestamp(100, 1), "op": "i"})
        {'ts': '100:1', 'op': 'i'}
    """
    if value is None:
        return None
    
    if isinstance(value, Timestamp):
        return encode_position(value)
    
    if isinstance(value, ObjectId):
        return str(value)
    
    if isinstance(value, datetime):
        return value.isoformat()
    
    if isinstance(value, Decimal128):
        return str(value)
    
    # bson.Binary subclasses bytes
    if isinstance(value, bytes):
        return base64.b64encode(value).decode('ascii')
    
    if isinstance(value, dict):
        return {k: bson_safe(v) for k, v in value.items()}
    
    if isinstance(value, (list, tuple)):
        return [bson_safe(v) for v in value]
    
    return value

"""
Record serialization for the persistent store.

Records are written as a JSON envelope naming the record type and format
version. Unknown fields inside the payload are ignored on read, so records
written by a newer scheduler stay readable by an older one.
"""

import json
from typing import Any, Dict, Type, TypeVar

FORMAT_VERSION = 1

T = TypeVar("T")


class SerializationError(Exception):
    """Raised when stored bytes cannot be decoded into the expected record."""
    pass


def serialize(record: Any) -> bytes:
    """
    Encode a record exposing to_dict().
    
    Args:
        record: Record to encode
    
    Returns:
        UTF-8 JSON bytes
    """
    envelope = {
        "type": type(record).__name__,
        "version": FORMAT_VERSION,
        "data": record.to_dict(),
    }
    return json.dumps(envelope, sort_keys=True).encode("utf-8")


def deserialize(data: bytes, record_type: Type[T]) -> T:
    """
    Decode bytes written by serialize().
    
    Args:
        data: Stored bytes
        record_type: Expected record class exposing from_dict()
    
    Returns:
        Decoded record
    
    Raises:
        SerializationError: If the bytes are empty, malformed, or hold another type
    """
    if not data:
        raise SerializationError(f"no {record_type.__name__} stored")
    
    try:
        envelope: Dict[str, Any] = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise SerializationError(f"malformed {record_type.__name__}: {e}") from e
    
    if not isinstance(envelope, dict) or envelope.get("type") != record_type.__name__:
        raise SerializationError(
            f"expected {record_type.__name__}, found {envelope.get('type') if isinstance(envelope, dict) else envelope!r}"
        )
    
    try:
        return record_type.from_dict(envelope["data"])
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise SerializationError(f"invalid {record_type.__name__}: {e}") from e

"""
Canonical JSON serialization for deterministic storage and hashing.

Two-phase approach:
1. Normalize: Convert datetimes and containers to JSON-safe primitives (our code)
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Used for descriptors (so an unchanged runtime hashes identically across
registrations) and for opaque cursors (so an int cursor comes back as int).

IMPORTANT: NaN and Infinity are strictly REJECTED, not silently converted.
"""

import hashlib
import json
import math
from datetime import UTC, date, datetime
from typing import Any

import rfc8785

# Version string for hash verification
CANONICAL_VERSION = "sha256-rfc8785-v1"


def _normalize_value(obj: Any) -> Any:
    """Convert a single value to JSON-safe primitive.

    Raises:
        ValueError: If value contains NaN or Infinity
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(
                f"Cannot canonicalize non-finite float: {obj}. "
                "Use None for missing values, not NaN."
            )
        return obj

    if obj is None or isinstance(obj, (str, int, bool)):
        return obj

    # Naive datetimes assumed UTC (explicit policy)
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            return obj.replace(tzinfo=UTC).isoformat()
        return obj.astimezone(UTC).isoformat()
    if isinstance(obj, date):
        return obj.isoformat()

    return obj


def _normalize_for_canonical(data: Any) -> Any:
    """Recursively normalize a data structure for canonical JSON."""
    if isinstance(data, dict):
        return {str(k): _normalize_for_canonical(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_normalize_for_canonical(v) for v in data]
    return _normalize_value(data)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON for storage and hashing.

    Args:
        obj: Data structure to serialize

    Returns:
        Canonical JSON string (sorted keys, no whitespace)

    Raises:
        ValueError: If data contains NaN or Infinity
        TypeError: If data contains values with no JSON representation
    """
    normalized = _normalize_for_canonical(obj)
    return rfc8785.dumps(normalized).decode("utf-8")


def stable_hash(obj: Any) -> str:
    """Compute a stable SHA-256 hex digest of the canonical JSON form."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


def dump_optional(obj: Any) -> str | None:
    """canonical_json, passing None through as SQL NULL."""
    if obj is None:
        return None
    return canonical_json(obj)


def load_optional(text: str | None) -> Any:
    """Inverse of dump_optional."""
    if text is None:
        return None
    return json.loads(text)


# Cursors wrap datetimes in a single-key tag so they load back as the same
# type (naive stays naive); anything else must already be JSON-native.
_DATETIME_TAG = "$datetime"
_DATE_TAG = "$date"


def dump_cursor(cursor: Any) -> str | None:
    """Encode an opaque cursor (source id) for a text column.

    Raises:
        TypeError: If the cursor has no JSON representation
    """
    if cursor is None:
        return None
    if isinstance(cursor, datetime):
        return canonical_json({_DATETIME_TAG: cursor.isoformat()})
    if isinstance(cursor, date):
        return canonical_json({_DATE_TAG: cursor.isoformat()})
    if isinstance(cursor, (str, int, float)) and not isinstance(cursor, bool):
        return canonical_json(cursor)
    raise TypeError(
        f"Cursor of type {type(cursor).__name__} cannot be stored; "
        "source ids must be str, int, float, date or datetime"
    )


def load_cursor(text: str | None) -> Any:
    """Inverse of dump_cursor."""
    if text is None:
        return None
    value = json.loads(text)
    if isinstance(value, dict) and len(value) == 1:
        if _DATETIME_TAG in value:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        if _DATE_TAG in value:
            return date.fromisoformat(value[_DATE_TAG])
    return value

"""
Row keys and fingerprints.

A ``RowKey`` is a plain tuple of primary-key values; tuples compare
lexicographically, which matches ``ORDER BY pk1, pk2, ...`` for the types
primary keys use in practice (integers, text under a binary collation,
dates, uuids). ``KEY_MAX`` stands in for an exhausted stream.
"""

import json
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from functools import total_ordering
from typing import Any, NamedTuple

from .errors import AuditFormatError

RowKey = tuple


@total_ordering
class _MaxKey:
    """Sentinel comparing greater than every real key."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __eq__(self, other: object) -> bool:
        return other is self

    def __lt__(self, other: object) -> bool:
        return False

    def __gt__(self, other: object) -> bool:
        return other is not self

    def __hash__(self) -> int:
        return hash("rowsync.KEY_MAX")

    def __repr__(self) -> str:
        return "KEY_MAX"


KEY_MAX = _MaxKey()


class RowFingerprint(NamedTuple):
    """Primary key plus row checksum, as produced by the fingerprint query."""

    key: RowKey
    checksum: str


def as_key(values: Any) -> RowKey:
    """Coerce a scalar or sequence of primary-key values to a RowKey."""
    if isinstance(values, tuple):
        return values
    if isinstance(values, list):
        return tuple(values)
    return (values,)


def _encode_value(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


def encode_key(key: RowKey) -> str:
    """
    Encode a key as a compact JSON array for the persisted audit files.

    >>> encode_key((5, "a"))
    '[5,"a"]'
    """
    return json.dumps([_encode_value(v) for v in key], separators=(",", ":"))


def decode_key(text: str) -> RowKey:
    """Inverse of :func:`encode_key` (dates come back as ISO strings)."""
    try:
        values = json.loads(text)
    except json.JSONDecodeError as e:
        raise AuditFormatError(f"Malformed primary key field: {text!r}") from e
    if not isinstance(values, list):
        raise AuditFormatError(f"Primary key field is not an array: {text!r}")
    return tuple(values)


def format_key(key: RowKey) -> str:
    """Human-readable key for log lines: ``5`` or ``(5, 'a')``."""
    if key is KEY_MAX:
        return "KEY_MAX"
    if len(key) == 1:
        return str(key[0])
    return repr(key)

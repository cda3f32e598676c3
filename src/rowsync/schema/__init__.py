"""
Schema Model and the metadata provider that loads it.
"""

from .decode import RowDecoder, estimate_row_size, normalize_for_insert
from .introspect import SchemaIntrospector
from .models import Column, ColumnKind, ForeignKey, KeyRole, Schema, Table

__all__ = [
    "Column",
    "ColumnKind",
    "ForeignKey",
    "KeyRole",
    "Schema",
    "Table",
    "RowDecoder",
    "estimate_row_size",
    "normalize_for_insert",
    "SchemaIntrospector",
]

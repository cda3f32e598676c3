"""
SQL generation: identifier quoting, per-engine dialects, key predicates.
"""

from .dialect import Dialect, PostgresDialect, SQLServerDialect, get_dialect
from .predicates import KeyRangePredicate, KeySetPredicate, Predicate
from .quoting import validate_identifier

__all__ = [
    "Dialect",
    "PostgresDialect",
    "SQLServerDialect",
    "get_dialect",
    "KeyRangePredicate",
    "KeySetPredicate",
    "Predicate",
    "validate_identifier",
]

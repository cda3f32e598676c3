"""
Fingerprint Generator.

Builds the SQL select list producing ``(pk..., row_checksum)`` for a table.
Per column the value is cast to canonical text, NULL-substituted (nullable
columns only) and MD5 hashed; the column hashes are concatenated in
column-name order and hashed again.

Floats canonicalize to three significant digits relative to their own
magnitude, so 10.0 and 10.005 hash identically.
"""

from .errors import SkipTable
from .schema.models import Column, ColumnKind, Table
from .sql.dialect import Dialect

# Must never occur in real data
NULL_SENTINEL = "@9mT&$5CLZ!pd2Q$hxTG46Y"

CHECKSUM_ALIAS = "row_checksum"


class FingerprintGenerator:
    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    def column_expression(self, column: Column) -> str:
        kind = column.kind
        if kind is ColumnKind.UNSUPPORTED:
            raise ValueError(f"Cannot fingerprint {column.name} ({column.raw_type or column.data_type})")

        expression = self.dialect.as_text(self.dialect.quote(column.name), kind)
        if column.nullable:
            expression = self.dialect.coalesce(expression, self.dialect.literal(NULL_SENTINEL))
        return self.dialect.md5(expression)

    def checksum_expression(self, table: Table) -> str:
        """
        Raises:
            SkipTable: No usable primary key, or an unsupported column type
        """
        reason = table.unusable_reason()
        if reason:
            raise SkipTable(table.name, reason)

        columns = sorted(table.columns.values(), key=lambda c: c.name)
        return self.dialect.md5(
            self.dialect.concat([self.column_expression(c) for c in columns])
        )

    def projection(self, table: Table) -> str:
        """Select list ``pk1, pk2, ..., <checksum> AS row_checksum``."""
        checksum = self.checksum_expression(table)
        keys = [self.dialect.quote(name) for name in table.primary_key_names]
        return ", ".join(keys + [f"{checksum} AS {CHECKSUM_ALIAS}"])

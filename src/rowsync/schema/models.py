"""
Schema Model: tables, columns and foreign keys as plain immutable data.

Loaded once per run by the metadata provider and read-only thereafter.
"""

from dataclasses import dataclass, field
from enum import Enum


class KeyRole(str, Enum):
    NONE = ""
    PRIMARY = "PRI"


class ColumnKind(str, Enum):
    """Normalized column category used for fingerprinting and decoding."""

    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    ENUM = "enum"
    BINARY = "binary"
    TEXT = "text"
    UNSUPPORTED = "unsupported"


_KIND_BY_TYPE = {
    ColumnKind.INTEGER: {
        "bigint", "int", "integer", "mediumint", "smallint", "tinyint",
        "int2", "int4", "int8", "serial", "bigserial", "smallserial",
    },
    ColumnKind.FLOAT: {"float", "double", "double precision", "real", "float4", "float8"},
    ColumnKind.DECIMAL: {"numeric", "decimal", "money", "smallmoney"},
    ColumnKind.BOOLEAN: {"boolean", "bool", "bit"},
    ColumnKind.DATE: {"date"},
    ColumnKind.DATETIME: {
        "datetime", "datetime2", "smalldatetime", "datetimeoffset", "timestamp",
        "timestamp without time zone", "timestamp with time zone", "timestamptz",
    },
    ColumnKind.ENUM: {"enum"},
    ColumnKind.BINARY: {"bytea", "binary", "varbinary", "image", "blob", "longblob"},
    ColumnKind.UNSUPPORTED: {
        "geometry", "geography", "hierarchyid", "sql_variant",
        "point", "line", "lseg", "box", "path", "polygon", "circle",
    },
}


CHARACTER_TYPES = frozenset({
    "character varying", "varchar", "character", "char", "bpchar", "text",
    "citext", "name", "nvarchar", "nchar", "ntext",
})


def _unquotable(identifier: str, max_parts: int) -> bool:
    return "\x00" in identifier or identifier.count(".") >= max_parts


def classify(data_type: str, raw_type: str = "") -> ColumnKind:
    """
    Map a declared type (and raw type string) to a ColumnKind.

    The raw type wins for unsupported spatial types, which PostgreSQL reports
    as ``USER-DEFINED`` with the real name in ``udt_name``.
    """
    data_type = data_type.lower().strip()
    raw_type = raw_type.lower().strip()

    if raw_type in _KIND_BY_TYPE[ColumnKind.UNSUPPORTED]:
        return ColumnKind.UNSUPPORTED
    if raw_type.startswith("enum("):
        return ColumnKind.ENUM
    for kind, names in _KIND_BY_TYPE.items():
        if data_type in names:
            return kind
    return ColumnKind.TEXT


@dataclass(frozen=True)
class Column:
    name: str
    data_type: str
    raw_type: str = ""
    nullable: bool = True
    key_role: KeyRole = KeyRole.NONE
    key_constraint: str | None = None
    ordinal: int = 0
    identity: bool = False

    @property
    def kind(self) -> ColumnKind:
        return classify(self.data_type, self.raw_type)

    @property
    def is_primary(self) -> bool:
        return self.key_role is KeyRole.PRIMARY

    @property
    def is_character(self) -> bool:
        """Character string type, ordered and compared under a collation."""
        return self.data_type.lower().strip() in CHARACTER_TYPES


@dataclass(frozen=True)
class ForeignKey:
    """
    A foreign-key constraint.

    ``column_pairs`` holds ``(parent_column, child_column)`` tuples in
    constraint order.
    """

    name: str
    parent_table: str
    child_table: str
    column_pairs: tuple[tuple[str, str], ...]

    @property
    def parent_columns(self) -> list[str]:
        return [parent for parent, _ in self.column_pairs]

    @property
    def child_columns(self) -> list[str]:
        return [child for _, child in self.column_pairs]


@dataclass
class Table:
    name: str
    columns: dict[str, Column] = field(default_factory=dict)

    @property
    def primary_key(self) -> list[Column]:
        """Primary-key columns in declaration order."""
        return sorted(
            (c for c in self.columns.values() if c.is_primary),
            key=lambda c: c.ordinal,
        )

    @property
    def primary_key_names(self) -> list[str]:
        return [c.name for c in self.primary_key]

    @property
    def column_names(self) -> list[str]:
        """All column names in declaration order."""
        return [c.name for c in sorted(self.columns.values(), key=lambda c: c.ordinal)]

    def unusable_reason(self) -> str | None:
        """Why this table cannot be diffed/applied, or None if it can."""
        if _unquotable(self.name, max_parts=2):
            return "table name cannot be quoted"
        bad_names = [name for name in self.columns if _unquotable(name, max_parts=1)]
        if bad_names:
            return f"column name cannot be quoted: {', '.join(sorted(bad_names))}"

        pk = self.primary_key
        if not pk:
            return "no primary key"

        constraints = {c.key_constraint for c in pk if c.key_constraint}
        if len(constraints) > 1:
            return f"multiple independent primary keys ({', '.join(sorted(constraints))})"

        unsupported = [c.name for c in self.columns.values() if c.kind is ColumnKind.UNSUPPORTED]
        if unsupported:
            return f"unsupported column type in {', '.join(sorted(unsupported))}"

        return None

    @property
    def has_identity(self) -> bool:
        return any(c.identity for c in self.columns.values())

    @property
    def is_usable(self) -> bool:
        return self.unusable_reason() is None


@dataclass
class Schema:
    tables: dict[str, Table] = field(default_factory=dict)
    foreign_keys: list[ForeignKey] = field(default_factory=list)

    def table(self, name: str) -> Table:
        try:
            return self.tables[name]
        except KeyError:
            raise KeyError(f"Unknown table: {name}") from None

    def children_index(self) -> dict[str, list[ForeignKey]]:
        """Adjacency index parent table -> foreign keys referencing it."""
        index: dict[str, list[ForeignKey]] = {}
        for fk in self.foreign_keys:
            index.setdefault(fk.parent_table, []).append(fk)
        return index

    def select_tables(
        self,
        include: list[str] | None = None,
        skip: list[str] | None = None,
        start_table: str | None = None,
    ) -> list[Table]:
        """
        Tables to process, sorted by name.

        ``start_table`` resumes a previous run: tables sorting before it are
        dropped.
        """
        skipped = set(skip or [])
        names = sorted(include) if include else sorted(self.tables)

        selected = []
        for name in names:
            if name in skipped:
                continue
            if start_table is not None and name < start_table:
                continue
            if name not in self.tables:
                raise KeyError(f"Unknown table: {name}")
            selected.append(self.tables[name])
        return selected

"""
Metadata provider: loads the Schema Model from catalog views.

PostgreSQL and SQL Server both expose columns and primary keys through
``information_schema``. Foreign keys come from the engine catalogs
(``pg_constraint`` on PostgreSQL, ``sys.foreign_key_columns`` on SQL
Server): constraint names are only unique per table on PostgreSQL, and
``information_schema`` cannot tell two same-named constraints apart.
"""

import logging
from typing import Any

from .models import Column, ForeignKey, KeyRole, Schema, Table

logger = logging.getLogger(__name__)

DEFAULT_SCHEMAS = {
    "postgresql": "public",
    "sqlserver": "dbo",
}

COLUMNS_QUERY = """
SELECT c.table_name, c.column_name, c.data_type, c.udt_name,
       c.is_nullable, c.ordinal_position, c.is_identity
FROM information_schema.columns c
JOIN information_schema.tables t
  ON t.table_schema = c.table_schema AND t.table_name = c.table_name
WHERE t.table_type = 'BASE TABLE' AND c.table_schema = {ph}
ORDER BY c.table_name, c.ordinal_position
"""

# SQL Server has no udt_name; DATA_TYPE already carries the real type name
SQLSERVER_COLUMNS_QUERY = """
SELECT c.TABLE_NAME, c.COLUMN_NAME, c.DATA_TYPE, c.DATA_TYPE,
       c.IS_NULLABLE, c.ORDINAL_POSITION,
       COLUMNPROPERTY(
           OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
           c.COLUMN_NAME, 'IsIdentity')
FROM INFORMATION_SCHEMA.COLUMNS c
JOIN INFORMATION_SCHEMA.TABLES t
  ON t.TABLE_SCHEMA = c.TABLE_SCHEMA AND t.TABLE_NAME = c.TABLE_NAME
WHERE t.TABLE_TYPE = 'BASE TABLE' AND c.TABLE_SCHEMA = {ph}
ORDER BY c.TABLE_NAME, c.ORDINAL_POSITION
"""

PRIMARY_KEYS_QUERY = """
SELECT tc.table_name, kcu.column_name, tc.constraint_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON kcu.constraint_schema = tc.constraint_schema
 AND kcu.constraint_name = tc.constraint_name
 AND kcu.table_name = tc.table_name
WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_schema = {ph}
ORDER BY tc.table_name, kcu.ordinal_position
"""

POSTGRES_ENUMS_QUERY = "SELECT typname FROM pg_type WHERE typtype = 'e'"

POSTGRES_FOREIGN_KEYS_QUERY = """
SELECT con.conname, parent.relname, pa.attname, child.relname, ca.attname
FROM pg_constraint con
JOIN pg_class child ON child.oid = con.conrelid
JOIN pg_namespace ns ON ns.oid = child.relnamespace
JOIN pg_class parent ON parent.oid = con.confrelid
CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
     WITH ORDINALITY AS k(child_attnum, parent_attnum, position)
JOIN pg_attribute ca ON ca.attrelid = con.conrelid AND ca.attnum = k.child_attnum
JOIN pg_attribute pa ON pa.attrelid = con.confrelid AND pa.attnum = k.parent_attnum
WHERE con.contype = 'f' AND ns.nspname = {ph}
ORDER BY child.relname, con.conname, k.position
"""

SQLSERVER_FOREIGN_KEYS_QUERY = """
SELECT fk.name,
       OBJECT_NAME(fkc.referenced_object_id), pc.name,
       OBJECT_NAME(fkc.parent_object_id), cc.name
FROM sys.foreign_keys fk
JOIN sys.foreign_key_columns fkc ON fkc.constraint_object_id = fk.object_id
JOIN sys.columns cc
  ON cc.object_id = fkc.parent_object_id AND cc.column_id = fkc.parent_column_id
JOIN sys.columns pc
  ON pc.object_id = fkc.referenced_object_id AND pc.column_id = fkc.referenced_column_id
WHERE OBJECT_SCHEMA_NAME(fk.parent_object_id) = {ph}
ORDER BY OBJECT_NAME(fkc.parent_object_id), fk.name, fkc.constraint_column_id
"""


def _flag(value: Any) -> bool:
    """Catalog yes/no column: 'YES'/'NO' on PostgreSQL, 1/0/NULL on SQL Server."""
    return str(value).upper() in ("YES", "1", "TRUE")


class SchemaIntrospector:
    """
    Loads tables, columns, primary keys and foreign keys for one schema.

    Args:
        database: rowsync.database.Database handle
        schema_name: Catalog schema to load (default: public / dbo)
    """

    def __init__(self, database: Any, schema_name: str | None = None):
        self.database = database
        self.dialect = database.dialect
        self.schema_name = schema_name or DEFAULT_SCHEMAS.get(self.dialect.name, "public")

    def _qualify(self, table_name: str) -> str:
        # A dotted name stays qualified so it cannot pass for schema.table
        if self.schema_name == DEFAULT_SCHEMAS.get(self.dialect.name) and "." not in table_name:
            return table_name
        return f"{self.schema_name}.{table_name}"

    def _query(self, template: str) -> list:
        sql = template.format(ph=self.dialect.placeholder)
        return self.database.query(sql, (self.schema_name,))

    def load(self) -> Schema:
        is_postgres = self.dialect.name == "postgresql"
        enum_types = set()
        if is_postgres:
            enum_types = {row[0] for row in self.database.query(POSTGRES_ENUMS_QUERY)}

        primary_keys: dict[tuple[str, str], str] = {}
        for table_name, column_name, constraint_name in self._query(PRIMARY_KEYS_QUERY):
            primary_keys[(table_name, column_name)] = constraint_name

        tables: dict[str, Table] = {}
        columns_query = COLUMNS_QUERY if is_postgres else SQLSERVER_COLUMNS_QUERY
        for table_name, column_name, data_type, raw_type, nullable, ordinal, identity in self._query(
            columns_query
        ):
            if raw_type in enum_types:
                data_type = "enum"
            constraint = primary_keys.get((table_name, column_name))
            column = Column(
                name=column_name,
                data_type=data_type,
                raw_type=raw_type or "",
                nullable=str(nullable).upper() == "YES",
                key_role=KeyRole.PRIMARY if constraint else KeyRole.NONE,
                key_constraint=constraint,
                ordinal=int(ordinal),
                identity=_flag(identity),
            )
            name = self._qualify(table_name)
            tables.setdefault(name, Table(name=name)).columns[column_name] = column

        fk_query = POSTGRES_FOREIGN_KEYS_QUERY if is_postgres else SQLSERVER_FOREIGN_KEYS_QUERY
        # Constraint names are unique per child table only
        pairs: dict[tuple[str, str], list] = {}
        parents: dict[tuple[str, str], str] = {}
        for name, parent_table, parent_column, child_table, child_column in self._query(fk_query):
            constraint = (self._qualify(child_table), name)
            pairs.setdefault(constraint, []).append((parent_column, child_column))
            parents[constraint] = self._qualify(parent_table)

        foreign_keys = [
            ForeignKey(
                name=name,
                parent_table=parents[(child_table, name)],
                child_table=child_table,
                column_pairs=tuple(column_pairs),
            )
            for (child_table, name), column_pairs in pairs.items()
        ]

        logger.info(
            f"Loaded schema {self.schema_name}: {len(tables)} tables, "
            f"{len(foreign_keys)} foreign keys"
        )
        return Schema(tables=tables, foreign_keys=foreign_keys)

"""
Unit tests for SQL generation: identifier quoting, dialects and key predicates.

Tests database-native identifier quoting to prevent SQL injection:
- PostgreSQL: double-quoted identifiers
- SQL Server: bracket quoting [schema].[table]
"""

import pytest

from fakes import make_table
from rowsync.errors import ConfigurationError
from rowsync.keys import KEY_MAX
from rowsync.sql.dialect import PostgresDialect, SQLServerDialect, get_dialect
from rowsync.sql.predicates import TRUE, KeyRangePredicate, KeySetPredicate, Predicate, order_by
from rowsync.sql.quoting import (
    quote_postgres_identifier,
    quote_sqlserver_identifier,
    quote_string_literal,
    validate_identifier,
)

INJECTION_ATTEMPTS = [
    "customers; DROP TABLE users--",
    "customers' OR '1'='1",
    "customers/**/UNION/**/SELECT",
    'customers"; DROP TABLE users--',
    "customers]; DROP TABLE users--",
]

UNQUOTABLE = [
    "",
    "../etc/passwd",
    "customers\x00malicious",
    "public.dbo.customers",
    "sales.",
]


class TestQuoting:
    """Test identifier validation and quoting"""

    def test_postgres_simple(self):
        assert quote_postgres_identifier("customers") == '"customers"'

    def test_postgres_schema_qualified(self):
        assert quote_postgres_identifier("public.customers") == '"public"."customers"'

    def test_sqlserver_simple(self):
        assert quote_sqlserver_identifier("customers") == "[customers]"

    def test_sqlserver_schema_qualified(self):
        assert quote_sqlserver_identifier("dbo.customers") == "[dbo].[customers]"

    def test_already_quoted_input_is_normalized(self):
        assert quote_sqlserver_identifier("[dbo].[orders]") == "[dbo].[orders]"
        assert quote_postgres_identifier('"orders"') == '"orders"'

    def test_split_into_parts(self):
        assert validate_identifier("table_123$x") == ["table_123$x"]
        assert validate_identifier("sales.orders") == ["sales", "orders"]

    @pytest.mark.parametrize("identifier,postgres,sqlserver", [
        ("order items", '"order items"', "[order items]"),
        ("first-name", '"first-name"', "[first-name]"),
        ("größe", '"größe"', "[größe]"),
        ("2024_totals", '"2024_totals"', "[2024_totals]"),
    ])
    def test_legal_names_quoted(self, identifier, postgres, sqlserver):
        assert quote_postgres_identifier(identifier) == postgres
        assert quote_sqlserver_identifier(identifier) == sqlserver

    @pytest.mark.parametrize("identifier", INJECTION_ATTEMPTS)
    def test_injection_attempts_stay_one_identifier(self, identifier):
        postgres = quote_postgres_identifier(identifier)
        sqlserver = quote_sqlserver_identifier(identifier)

        assert postgres[1:-1].replace('""', "").count('"') == 0
        assert sqlserver[1:-1].replace("]]", "").count("]") == 0

    def test_embedded_quotes_doubled(self):
        assert quote_postgres_identifier('x"; DROP TABLE t; --') == '"x""; DROP TABLE t; --"'
        assert quote_sqlserver_identifier("x]; DROP TABLE t; --") == "[x]]; DROP TABLE t; --]"

    @pytest.mark.parametrize("identifier", UNQUOTABLE)
    def test_rejects_unquotable(self, identifier):
        with pytest.raises(ValueError, match="Invalid identifier format"):
            quote_postgres_identifier(identifier)
        with pytest.raises(ValueError, match="Invalid identifier format"):
            quote_sqlserver_identifier(identifier)

    def test_string_literal_doubles_quotes(self):
        assert quote_string_literal("it's") == "'it''s'"


class TestDialects:
    """Test per-engine SQL fragments"""

    def test_get_dialect_aliases(self):
        assert isinstance(get_dialect("postgres"), PostgresDialect)
        assert isinstance(get_dialect("PG"), PostgresDialect)
        assert isinstance(get_dialect("mssql"), SQLServerDialect)
        assert get_dialect("postgresql").name == "postgresql"

    def test_get_dialect_unknown(self):
        with pytest.raises(ConfigurationError, match="Unsupported database dialect"):
            get_dialect("oracle")

    def test_postgres_select_with_limit(self):
        sql = PostgresDialect().select('"id"', "items", where="1 = 1", order_by='"id"', limit=10)
        assert sql == 'SELECT "id" FROM "items" WHERE 1 = 1 ORDER BY "id" LIMIT 10'

    def test_sqlserver_select_with_top(self):
        sql = SQLServerDialect().select("[id]", "items", order_by="[id]", limit=10)
        assert sql == "SELECT TOP (10) [id] FROM [items] ORDER BY [id]"

    def test_insert_multi_row(self):
        sql = PostgresDialect().insert("items", ["id", "name"], 2)
        assert sql == 'INSERT INTO "items" ("id", "name") VALUES (%s, %s), (%s, %s)'

    def test_sqlserver_placeholders(self):
        assert SQLServerDialect().placeholders(3) == "?, ?, ?"

    def test_max_rows_per_statement(self):
        assert PostgresDialect().max_rows_per_statement(3) == 21845
        assert SQLServerDialect().max_rows_per_statement(1) == 1000
        assert SQLServerDialect().max_rows_per_statement(10) == 209
        assert SQLServerDialect().max_rows_per_statement(5000) == 1

    def test_md5_and_concat(self):
        pg = PostgresDialect()
        ms = SQLServerDialect()
        assert pg.concat(["a", "b"]) == "a || b"
        assert pg.md5("x") == "md5(x)"
        assert ms.concat(["a", "b"]) == "CONCAT(a, b)"
        assert ms.concat(["a"]) == "a"
        assert "HASHBYTES('MD5', x)" in ms.md5("x")

    def test_insert_with_identity(self):
        assert PostgresDialect().insert("t", ["id"], 1, identity=True) == (
            'INSERT INTO "t" ("id") OVERRIDING SYSTEM VALUE VALUES (%s)'
        )
        assert SQLServerDialect().insert("t", ["id"], 1, identity=True) == (
            "INSERT INTO [t] ([id]) VALUES (?)"
        )

    def test_identity_insert_statements(self):
        assert PostgresDialect().identity_insert("t", enabled=True) == []
        assert SQLServerDialect().identity_insert("dbo.t", enabled=True) == [
            "SET IDENTITY_INSERT [dbo].[t] ON"
        ]
        assert SQLServerDialect().identity_insert("t", enabled=False) == [
            "SET IDENTITY_INSERT [t] OFF"
        ]

    def test_key_expression_collation(self):
        table = make_table(
            "fruit",
            [("name", "character varying"), ("code", "nchar"), ("batch", "integer"),
             ("grade", "enum")],
            pk=("name",),
        )
        pg = PostgresDialect()
        ms = SQLServerDialect()

        assert pg.key_expression(table.columns["name"]) == '"name" COLLATE "C"'
        assert pg.key_expression(table.columns["batch"]) == '"batch"'
        assert pg.key_expression(table.columns["grade"]) == 'CAST("grade" AS TEXT) COLLATE "C"'
        assert ms.key_expression(table.columns["code"]) == "[code] COLLATE Latin1_General_BIN2"
        assert ms.key_expression(table.columns["batch"]) == "[batch]"

    def test_postgres_integrity_checks(self):
        dialect = PostgresDialect()
        assert dialect.disable_integrity_checks(["a"]) == ["SET session_replication_role = replica"]
        assert dialect.enable_integrity_checks(["a"]) == ["SET session_replication_role = DEFAULT"]

    def test_sqlserver_integrity_checks_per_table(self):
        dialect = SQLServerDialect()
        assert dialect.disable_integrity_checks(["a", "b"]) == [
            "ALTER TABLE [a] NOCHECK CONSTRAINT ALL",
            "ALTER TABLE [b] NOCHECK CONSTRAINT ALL",
        ]
        assert dialect.enable_integrity_checks(["a"]) == [
            "ALTER TABLE [a] WITH CHECK CHECK CONSTRAINT ALL",
        ]


class TestKeySetPredicate:
    """Test the parameterized key set builder"""

    def test_single_column(self):
        predicate = KeySetPredicate(SQLServerDialect(), ["id"]).build([(1,), (2,)])

        assert predicate.sql == "[id] = ? OR [id] = ?"
        assert predicate.params == (1, 2)

    def test_composite(self):
        predicate = KeySetPredicate(PostgresDialect(), ["a", "b"]).build([(1, "x"), (2, "y")])

        assert predicate.sql == '("a" = %s AND "b" = %s) OR ("a" = %s AND "b" = %s)'
        assert predicate.params == (1, "x", 2, "y")

    def test_rejects_empty_key_set(self):
        with pytest.raises(ValueError, match="at least one key"):
            KeySetPredicate(PostgresDialect(), ["id"]).build([])

    def test_rejects_width_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            KeySetPredicate(PostgresDialect(), ["id"]).build([(1, 2)])

    def test_rejects_no_columns(self):
        with pytest.raises(ValueError):
            KeySetPredicate(PostgresDialect(), [])

    def test_rejects_bad_column_name(self):
        with pytest.raises(ValueError, match="Invalid identifier format"):
            KeySetPredicate(PostgresDialect(), ["id\x00"])


class TestKeyRangePredicate:
    """Test half-open key range predicates"""

    def test_unbounded(self):
        assert KeyRangePredicate(PostgresDialect(), ["id"]).build() is TRUE

    def test_key_max_upper_is_unbounded(self):
        assert KeyRangePredicate(PostgresDialect(), ["id"]).build(upper=KEY_MAX) is TRUE

    def test_single_column_range(self):
        predicate = KeyRangePredicate(SQLServerDialect(), ["id"]).build(lower=(5,), upper=(9,))

        assert predicate.sql == "([id] > ?) AND (([id] < ?) OR ([id] = ?))"
        assert predicate.params == (5, 9, 9)

    def test_composite_greater_than(self):
        predicate = KeyRangePredicate(SQLServerDialect(), ["a", "b"]).greater_than((1, 2))

        assert predicate.sql == "([a] > ?) OR ([a] = ? AND [b] > ?)"
        assert predicate.params == (1, 1, 2)

    def test_composite_at_most(self):
        predicate = KeyRangePredicate(SQLServerDialect(), ["a", "b"]).at_most((1, 2))

        assert predicate.sql == "([a] < ?) OR ([a] = ? AND [b] < ?) OR ([a] = ? AND [b] = ?)"
        assert predicate.params == (1, 1, 2, 1, 2)

    def test_lower_only(self):
        predicate = KeyRangePredicate(PostgresDialect(), ["id"]).build(lower=(5,))
        assert predicate == Predicate('"id" > %s', (5,))

    def test_rejects_width_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            KeyRangePredicate(PostgresDialect(), ["a", "b"]).build(lower=(1,))

    def test_and_combines_params(self):
        combined = Predicate("a = ?", (1,)) & Predicate("b = ?", (2,))
        assert combined == Predicate("(a = ?) AND (b = ?)", (1, 2))

    def test_order_by(self):
        assert order_by(SQLServerDialect(), ["a", "b"]) == "[a], [b]"

    def test_order_by_collates_text_keys(self):
        table = make_table("fruit", [("name", "varchar"), ("batch", "integer")], pk=("name", "batch"))

        assert order_by(PostgresDialect(), ["name", "batch"], table) == '"name" COLLATE "C", "batch"'

    def test_range_collates_text_keys(self):
        table = make_table("fruit", [("name", "nvarchar")], pk=("name",))

        predicate = KeyRangePredicate(SQLServerDialect(), ["name"], table).greater_than(("apple",))

        assert predicate == Predicate("[name] COLLATE Latin1_General_BIN2 > ?", ("apple",))

    def test_key_set_collates_text_keys(self):
        table = make_table("fruit", [("name", "text")], pk=("name",))

        predicate = KeySetPredicate(PostgresDialect(), ["name"], table).build([("Apple",)])

        assert predicate.sql == '"name" COLLATE "C" = %s'

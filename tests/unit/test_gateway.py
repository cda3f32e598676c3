"""
Unit tests for the table gateway and database handle.

Uses Mock connections/databases to verify generated SQL, bound parameters
and row decoding without a server.
"""

import logging
import sys
from unittest.mock import MagicMock, Mock, patch

import pytest

from fakes import make_schema, make_table
from rowsync.config import ConnectionConfig
from rowsync.database import Database, connect
from rowsync.gateway import KEY_BATCH_SIZE, TableGateway
from rowsync.keys import RowFingerprint
from rowsync.schema.models import ForeignKey
from rowsync.sql.dialect import PostgresDialect, SQLServerDialect


def mock_database(dialect, rows=None):
    database = Mock()
    database.dialect = dialect
    database.host = "db1"
    database.name = "app"
    database.query.return_value = rows or []
    database.execute.return_value = 0
    return database


@pytest.fixture
def shop():
    customers = make_table("customers", [("id", "integer"), ("code", "text"), ("name", "text")])
    orders = make_table("orders", [("id", "integer"), ("customer_id", "integer"), ("bit_flag", "bit")])
    return make_schema(customers, orders)


class TestFingerprintReads:
    """Test fingerprint queries"""

    def test_page_after_key(self, shop):
        database = mock_database(PostgresDialect(), rows=[(6, "aa"), (7, "bb")])
        gateway = TableGateway(database, shop, role="source")

        page = gateway.fingerprint_page(shop.table("customers"), after=(5,), limit=10)

        sql, params = database.query.call_args[0]
        assert sql.startswith('SELECT "id", md5(')
        assert sql.endswith(' FROM "customers" WHERE "id" > %s ORDER BY "id" LIMIT 10')
        assert params == (5,)
        assert page == [RowFingerprint((6,), "aa"), RowFingerprint((7,), "bb")]

    def test_first_page_has_no_filter(self, shop):
        database = mock_database(SQLServerDialect())
        gateway = TableGateway(database, shop)

        gateway.fingerprint_page(shop.table("customers"), limit=100)

        sql, params = database.query.call_args[0]
        assert sql.startswith("SELECT TOP (100) [id], ")
        assert "WHERE" not in sql
        assert params == ()

    def test_range(self, shop):
        database = mock_database(PostgresDialect())
        gateway = TableGateway(database, shop)

        gateway.fingerprint_range(shop.table("customers"), lower=(2,), upper=(9,))

        sql, params = database.query.call_args[0]
        assert 'WHERE ("id" > %s) AND (("id" < %s) OR ("id" = %s))' in sql
        assert params == (2, 9, 9)

    def test_stream_uses_iterate(self, shop):
        database = mock_database(PostgresDialect())
        database.iterate.return_value = iter([(1, "aa"), (2, "bb")])
        gateway = TableGateway(database, shop)

        fingerprints = list(gateway.stream_fingerprints(shop.table("customers")))

        assert [fp.key for fp in fingerprints] == [(1,), (2,)]
        database.query.assert_not_called()

    def test_uses_own_table_definition(self, shop):
        database = mock_database(PostgresDialect())
        gateway = TableGateway(database, shop)
        other_side = make_table(
            "customers", [("id", "integer"), ("code", "text"), ("name", "text")],
            not_null=("code", "name"),
        )

        gateway.fingerprint_page(other_side)

        sql, _ = database.query.call_args[0]
        assert "COALESCE" in sql

    def test_keys_decoded_through_schema(self, shop):
        database = mock_database(SQLServerDialect(), rows=[("12", "aa")])
        gateway = TableGateway(database, shop)

        page = gateway.fingerprint_page(shop.table("orders"))

        assert page[0].key == (12,)


class TestCollatedKeys:
    """Test that text keys compare and sort in binary order"""

    @pytest.fixture
    def fruit(self):
        return make_schema(make_table("fruit", [("name", "varchar"), ("price", "numeric")], pk=("name",)))

    def test_postgres_page_uses_c_collation(self, fruit):
        database = mock_database(PostgresDialect(), rows=[("Banana", "aa"), ("apple", "bb")])
        gateway = TableGateway(database, fruit)

        page = gateway.fingerprint_page(fruit.table("fruit"), after=("Apple",), limit=10)

        sql, params = database.query.call_args[0]
        assert sql.endswith(
            ' FROM "fruit" WHERE "name" COLLATE "C" > %s ORDER BY "name" COLLATE "C" LIMIT 10'
        )
        assert params == ("Apple",)
        assert [fp.key for fp in page] == [("Banana",), ("apple",)]

    def test_sqlserver_range_uses_binary_collation(self, fruit):
        database = mock_database(SQLServerDialect())
        gateway = TableGateway(database, fruit)

        gateway.fingerprint_range(fruit.table("fruit"), lower=None, upper=("kiwi",))

        sql, _ = database.query.call_args[0]
        assert (
            "WHERE ([name] COLLATE Latin1_General_BIN2 < ?) "
            "OR ([name] COLLATE Latin1_General_BIN2 = ?)"
        ) in sql
        assert sql.endswith("ORDER BY [name] COLLATE Latin1_General_BIN2")

    def test_delete_matches_exact_case(self, fruit):
        database = mock_database(SQLServerDialect())
        gateway = TableGateway(database, fruit, role="destination")

        gateway.delete_keys(fruit.table("fruit"), [("apple",)])

        database.execute.assert_called_once_with(
            "DELETE FROM [fruit] WHERE [name] COLLATE Latin1_General_BIN2 = ?", ("apple",)
        )

    def test_numeric_keys_unchanged(self, shop):
        database = mock_database(SQLServerDialect())
        gateway = TableGateway(database, shop)

        gateway.fingerprint_page(shop.table("customers"), after=(3,))

        sql, _ = database.query.call_args[0]
        assert "COLLATE" not in sql.split(" FROM ")[1]


class TestRowReads:
    """Test row and child-key lookups"""

    def test_fetch_rows(self, shop):
        database = mock_database(SQLServerDialect(), rows=[(1, "A1", "Ada")])
        gateway = TableGateway(database, shop)

        rows = gateway.fetch_rows(shop.table("customers"), [(1,), (2,)])

        sql, params = database.query.call_args[0]
        assert sql == (
            "SELECT [id], [code], [name] FROM [customers] "
            "WHERE [id] = ? OR [id] = ? ORDER BY [id]"
        )
        assert params == (1, 2)
        assert rows == [(1, "A1", "Ada")]

    def test_fetch_rows_decodes_columns(self, shop):
        database = mock_database(SQLServerDialect(), rows=[(3, 1)])
        gateway = TableGateway(database, shop)

        rows = gateway.fetch_rows(shop.table("orders"), [(3,)], ["id", "bit_flag"])

        assert rows == [(3, True)]

    def test_fetch_rows_chunked(self, shop):
        database = mock_database(PostgresDialect())
        gateway = TableGateway(database, shop)

        gateway.fetch_rows(shop.table("customers"), [(i,) for i in range(KEY_BATCH_SIZE * 2 + 1)])

        assert database.query.call_count == 3

    def test_fetch_row_map(self, shop):
        database = mock_database(PostgresDialect(), rows=[(1, "Ada")])
        gateway = TableGateway(database, shop)

        result = gateway.fetch_row_map(shop.table("customers"), [(1,)], ["name"])

        sql, _ = database.query.call_args[0]
        assert sql.startswith('SELECT "id", "name" FROM "customers"')
        assert result == {(1,): {"name": "Ada"}}

    def test_child_keys_via_primary_key(self, shop):
        database = mock_database(PostgresDialect(), rows=[(10,), (11,)])
        gateway = TableGateway(database, shop)
        fk = ForeignKey("orders_fk", "customers", "orders", (("id", "customer_id"),))

        keys = gateway.child_keys(fk, [(1,), (2,)])

        sql, params = database.query.call_args[0]
        assert sql == (
            'SELECT "id" FROM "orders" WHERE "customer_id" = %s OR "customer_id" = %s '
            'ORDER BY "id"'
        )
        assert params == (1, 2)
        assert keys == [(10,), (11,)]

    def test_child_keys_via_unique_column(self, shop):
        database = mock_database(PostgresDialect())
        database.query.side_effect = [[("A1",), (None,)], [(10,)]]
        gateway = TableGateway(database, shop)
        fk = ForeignKey("orders_code_fk", "customers", "orders", (("code", "customer_id"),))

        keys = gateway.child_keys(fk, [(1,), (2,)])

        _, params = database.query.call_args[0]
        assert params == ("A1",)
        assert keys == [(10,)]

    def test_child_keys_without_parents(self, shop):
        database = mock_database(PostgresDialect())
        gateway = TableGateway(database, shop)
        fk = ForeignKey("orders_fk", "customers", "orders", (("id", "customer_id"),))

        assert gateway.child_keys(fk, []) == []
        database.query.assert_not_called()


class TestWrites:
    """Test destination statements"""

    def test_delete_keys(self, shop):
        database = mock_database(PostgresDialect())
        database.execute.return_value = 2
        gateway = TableGateway(database, shop, role="destination")

        affected = gateway.delete_keys(shop.table("customers"), [(1,), (2,)])

        database.execute.assert_called_once_with(
            'DELETE FROM "customers" WHERE "id" = %s OR "id" = %s', (1, 2)
        )
        assert affected == 2

    def test_insert_rows(self, shop):
        database = mock_database(SQLServerDialect())
        database.execute.return_value = 2
        gateway = TableGateway(database, shop, role="destination")

        affected = gateway.insert_rows(
            shop.table("customers"), ["id", "name"], [(1, "a"), (2, "b")]
        )

        database.execute.assert_called_once_with(
            "INSERT INTO [customers] ([id], [name]) VALUES (?, ?), (?, ?)", [1, "a", 2, "b"]
        )
        assert affected == 2

    def test_identity_insert_wraps_sqlserver_insert(self):
        tickets = make_table("tickets", [("id", "integer"), ("title", "text")], identity=("id",))
        database = mock_database(SQLServerDialect())
        database.execute.return_value = 1
        gateway = TableGateway(database, make_schema(tickets), role="destination")

        affected = gateway.insert_rows(tickets, ["id", "title"], [(7, "printer jam")])

        statements = [c[0][0] for c in database.execute.call_args_list]
        assert statements == [
            "SET IDENTITY_INSERT [tickets] ON",
            "INSERT INTO [tickets] ([id], [title]) VALUES (?, ?)",
            "SET IDENTITY_INSERT [tickets] OFF",
        ]
        assert affected == 1

    def test_identity_insert_switched_off_after_failure(self):
        tickets = make_table("tickets", [("id", "integer"), ("title", "text")], identity=("id",))
        database = mock_database(SQLServerDialect())
        database.execute.side_effect = [0, RuntimeError("duplicate key"), 0]
        gateway = TableGateway(database, make_schema(tickets), role="destination")

        with pytest.raises(RuntimeError, match="duplicate key"):
            gateway.insert_rows(tickets, ["id", "title"], [(7, "printer jam")])

        assert database.execute.call_args_list[-1][0][0] == "SET IDENTITY_INSERT [tickets] OFF"

    def test_identity_insert_postgres_overrides_system_value(self):
        tickets = make_table("tickets", [("id", "integer"), ("title", "text")], identity=("id",))
        database = mock_database(PostgresDialect())
        gateway = TableGateway(database, make_schema(tickets), role="destination")

        gateway.insert_rows(tickets, ["id", "title"], [(7, "printer jam")])

        database.execute.assert_called_once_with(
            'INSERT INTO "tickets" ("id", "title") OVERRIDING SYSTEM VALUE VALUES (%s, %s)',
            [7, "printer jam"],
        )

    def test_insert_uses_destination_identity_columns(self, shop):
        database = mock_database(SQLServerDialect())
        destination_customers = make_table(
            "customers", [("id", "integer"), ("code", "text"), ("name", "text")], identity=("id",)
        )
        gateway = TableGateway(database, make_schema(destination_customers), role="destination")

        gateway.insert_rows(shop.table("customers"), ["id", "name"], [(1, "a")])

        assert database.execute.call_args_list[0][0][0] == "SET IDENTITY_INSERT [customers] ON"

    def test_integrity_checks(self, shop):
        database = mock_database(SQLServerDialect())
        gateway = TableGateway(database, shop, role="destination")

        gateway.disable_integrity_checks(["customers", "orders"])
        gateway.enable_integrity_checks(["customers"])

        statements = [c[0][0] for c in database.execute.call_args_list]
        assert statements == [
            "ALTER TABLE [customers] NOCHECK CONSTRAINT ALL",
            "ALTER TABLE [orders] NOCHECK CONSTRAINT ALL",
            "ALTER TABLE [customers] WITH CHECK CHECK CONSTRAINT ALL",
        ]

    def test_label_and_statement_limit(self, shop):
        gateway = TableGateway(mock_database(SQLServerDialect()), shop)

        assert gateway.label == "db1.app"
        assert gateway.max_rows_per_statement(3) == 699


class TestDatabase:
    """Test the DB-API wrapper"""

    def test_query_returns_tuples_and_closes_cursor(self):
        connection = MagicMock()
        cursor = connection.cursor.return_value
        cursor.fetchall.return_value = [[1, "a"]]
        database = Database(connection, PostgresDialect())

        assert database.query("SELECT 1", [5]) == [(1, "a")]
        cursor.execute.assert_called_once_with("SELECT 1", (5,))
        cursor.close.assert_called_once()

    def test_query_error_propagates(self):
        connection = MagicMock()
        cursor = connection.cursor.return_value
        cursor.execute.side_effect = RuntimeError("syntax error")
        database = Database(connection, PostgresDialect())

        with pytest.raises(RuntimeError, match="syntax error"):
            database.query("SELEC 1")
        cursor.close.assert_called_once()

    def test_execute_returns_rowcount(self):
        connection = MagicMock()
        connection.cursor.return_value.rowcount = 3
        database = Database(connection, SQLServerDialect())

        assert database.execute("DELETE FROM t") == 3

    def test_iterate_postgres_uses_named_cursor(self):
        connection = MagicMock()
        cursor = connection.cursor.return_value
        cursor.fetchmany.side_effect = [[(1,), (2,)], [(3,)], []]
        database = Database(connection, PostgresDialect())

        assert list(database.iterate("SELECT id FROM t")) == [(1,), (2,), (3,)]
        kwargs = connection.cursor.call_args.kwargs
        assert kwargs["withhold"] is True
        assert kwargs["name"].startswith("rowsync_")
        cursor.close.assert_called_once()

    def test_iterate_sqlserver_uses_plain_cursor(self):
        connection = MagicMock()
        connection.cursor.return_value.fetchmany.side_effect = [[(1,)], []]
        database = Database(connection, SQLServerDialect())

        assert list(database.iterate("SELECT id FROM t")) == [(1,)]
        connection.cursor.assert_called_once_with()

    def test_close_logs_errors(self, caplog):
        connection = MagicMock()
        connection.close.side_effect = RuntimeError("already closed")

        with caplog.at_level(logging.WARNING):
            Database(connection, PostgresDialect(), host="db1", name="app").close()

        assert "Error closing connection" in caplog.text

    @patch("rowsync.database.psycopg2.connect")
    def test_connect_postgres(self, mock_connect):
        config = ConnectionConfig("postgresql", "db1", "app", "u", "pw")

        database = connect(config)

        assert mock_connect.call_args.kwargs["host"] == "db1"
        assert mock_connect.call_args.kwargs["port"] == 5432
        mock_connect.return_value.set_session.assert_called_once_with(autocommit=True)
        assert database.dialect.name == "postgresql"
        assert (database.host, database.name) == ("db1", "app")

    def test_connect_sqlserver(self):
        pyodbc = MagicMock()
        config = ConnectionConfig("sqlserver", "mssql1", "app", "sa", "pw")

        with patch.dict(sys.modules, {"pyodbc": pyodbc}):
            database = connect(config)

        conn_str = pyodbc.connect.call_args[0][0]
        assert "SERVER=mssql1,1433;" in conn_str
        assert "DATABASE=app;" in conn_str
        assert pyodbc.connect.call_args.kwargs["autocommit"] is True
        assert database.dialect.name == "sqlserver"

"""
Tests for CatalogFetcher and SQLAlchemyConnection against SQLite with an
attached pg_catalog database.
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from typecache.binding.binder import EncodedValue
from typecache.catalog.fetcher import CatalogFetcher
from typecache.db.connection import SQLAlchemyConnection, server_error_from
from typecache.errors import CatalogLookupError, DatabaseConnectionError, ServerError
from typecache.models.descriptors import CompositeField, CompositeKind, EnumKind, ScalarKind, TypeName
from typecache.models.enums import TypeCategory

from tests.sqlite_catalog import add_composite, add_enum


@pytest.fixture
def connection(catalog_engine):
    with catalog_engine.begin() as conn:
        add_enum(conn, 16385, "my_enum", ["one", "two"])
        add_composite(conn, 16390, 16391, "point3", [("x", 23, False), ("gone", 25, True), ("y", 23, False)])
        add_enum(conn, 16395, "Plan", ["free", "pro"], namespace=16400)

    sa_conn = catalog_engine.connect()
    conn = SQLAlchemyConnection(sa_conn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def fetcher():
    return CatalogFetcher()


class TestCatalogFetcher:
    """Catalog reads for each type category."""

    def test_fetch_enum_labels_in_sort_order(self, catalog_engine, connection, fetcher):
        """Labels come back ordered by enumsortorder, not insertion order."""
        with catalog_engine.begin() as conn:
            add_enum(conn, 16396, "weekday", [])
            conn.exec_driver_sql(
                "INSERT INTO pg_catalog.pg_enum (enumtypid, enumlabel, enumsortorder) "
                "VALUES (16396, 'tue', 2.0), (16396, 'mon', 1.0), (16396, 'mon_half', 1.5)"
            )

        descriptor = fetcher.fetch(connection, TypeName("public", "weekday"))

        assert descriptor.kind == EnumKind(labels=("mon", "mon_half", "tue"))

    def test_fetch_enum(self, connection, fetcher):
        descriptor = fetcher.fetch(connection, TypeName("public", "my_enum"), epoch=3)

        assert descriptor.oid == 16385
        assert descriptor.qualified_name == "public.my_enum"
        assert descriptor.category is TypeCategory.ENUM
        assert descriptor.members == ("one", "two")
        assert descriptor.epoch == 3

    def test_fetch_composite_skips_dropped_columns(self, connection, fetcher):
        descriptor = fetcher.fetch(connection, TypeName("public", "point3"))

        assert descriptor.kind == CompositeKind(fields=(
            CompositeField(name="x", type_oid=23),
            CompositeField(name="y", type_oid=23),
        ))
        assert descriptor.members == ("x", "y")

    def test_fetch_other_typtype_is_scalar(self, catalog_engine, connection, fetcher):
        with catalog_engine.begin() as conn:
            conn.exec_driver_sql(
                "INSERT INTO pg_catalog.pg_type (oid, typname, typnamespace, typtype) "
                "VALUES (16397, 'positive_int', 2200, 'd')"
            )

        descriptor = fetcher.fetch(connection, TypeName("public", "positive_int"))

        assert descriptor.kind == ScalarKind()
        assert descriptor.members == ()

    def test_fetch_in_mixed_case_schema(self, connection, fetcher):
        descriptor = fetcher.fetch(connection, TypeName.parse('"Billing"."Plan"'))

        assert descriptor.oid == 16395
        assert descriptor.qualified_name == '"Billing"."Plan"'

    def test_fetch_missing_type(self, connection, fetcher):
        with pytest.raises(CatalogLookupError) as exc_info:
            fetcher.fetch(connection, TypeName("public", "missing"))

        assert exc_info.value.type_name == "public.missing"
        assert "does not exist" in str(exc_info.value)

    def test_wrong_schema_is_missing(self, connection, fetcher):
        with pytest.raises(CatalogLookupError):
            fetcher.fetch(connection, TypeName("public", "Plan"))

    def test_fetch_by_oid(self, connection, fetcher):
        descriptor = fetcher.fetch_by_oid(connection, 16385)

        assert descriptor.qualified_name == "public.my_enum"
        assert descriptor.members == ("one", "two")

    def test_fetch_by_unknown_oid(self, connection, fetcher):
        with pytest.raises(CatalogLookupError) as exc_info:
            fetcher.fetch_by_oid(connection, 99999)

        assert exc_info.value.type_oid == 99999

    def test_failed_catalog_query_is_wrapped(self, fake_conn, fetcher):
        """Transport errors during a lookup surface as CatalogLookupError with the cause attached."""
        fake_conn.disconnected = True

        with pytest.raises(CatalogLookupError) as exc_info:
            fetcher.fetch(fake_conn, TypeName("public", "my_enum"))

        assert isinstance(exc_info.value.__cause__, DatabaseConnectionError)
        assert exc_info.value.type_name == "public.my_enum"

    def test_fetcher_keeps_no_state(self, server, fake_conn, fetcher):
        server.create_enum("my_enum", ["one"])
        first = fetcher.fetch(fake_conn, TypeName("public", "my_enum"))
        server.recreate_enum("my_enum", ["one", "two"])
        second = fetcher.fetch(fake_conn, TypeName("public", "my_enum"))

        assert first.oid != second.oid
        assert second.members == ("one", "two")


class TestSQLAlchemyConnection:
    """The SQLAlchemy-backed DatabaseConnection."""

    def test_sqlite_does_not_present_oids(self, connection):
        assert connection.presents_oids is False

    def test_encoded_values_fall_back_to_text(self, connection):
        connection.batch_execute("CREATE TABLE my_table (a INTEGER, b TEXT)")

        result = connection.execute(
            "INSERT INTO my_table (a, b) VALUES (:a, :b)",
            {"a": 1, "b": EncodedValue(oid=16385, text="one", type_name="public.my_enum")},
        )

        assert result.rowcount == 1
        assert connection.fetch_all("SELECT a, b FROM my_table") == [(1, "one")]

    def test_select_reports_columns(self, connection):
        connection.batch_execute("CREATE TABLE my_table (a INTEGER, b TEXT)")
        connection.execute("INSERT INTO my_table (a, b) VALUES (1, 'two')")

        result = connection.execute("SELECT a, b FROM my_table")

        assert result.rows == [(1, "two")]
        assert result.column_names == ["a", "b"]
        assert len(result.column_oids) == 2

    def test_server_error_is_translated(self, connection):
        with pytest.raises(ServerError) as exc_info:
            connection.execute("SELECT * FROM no_such_table")

        assert "no_such_table" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, DBAPIError)

    def test_invalidated_connection_is_transport_error(self):
        sa_conn = MagicMock()
        sa_conn.exec_driver_sql.side_effect = DBAPIError(
            "INSERT", {}, Exception("server closed the connection unexpectedly"),
            connection_invalidated=True,
        )
        conn = SQLAlchemyConnection(sa_conn)

        with pytest.raises(DatabaseConnectionError):
            conn.execute("INSERT INTO t VALUES (1)")

    def test_savepoint_wraps_each_attempt(self):
        sa_conn = MagicMock()
        sa_conn.exec_driver_sql.return_value.returns_rows = False
        sa_conn.exec_driver_sql.return_value.rowcount = 1
        conn = SQLAlchemyConnection(sa_conn, use_savepoints=True)

        result = conn.execute("INSERT INTO t VALUES (1)")

        sa_conn.begin_nested.assert_called_once()
        assert result.rowcount == 1

    def test_commit_and_rollback_delegate(self):
        sa_conn = MagicMock()
        conn = SQLAlchemyConnection(sa_conn, use_savepoints=True)

        conn.commit()
        conn.rollback()

        sa_conn.commit.assert_called_once()
        sa_conn.rollback.assert_called_once()

    def test_commit_persists_across_connections(self, catalog_engine):
        """Work committed on one SQLAlchemy connection is visible on the next."""
        conn = SQLAlchemyConnection(catalog_engine.connect())
        conn.batch_execute("CREATE TABLE kept (a INTEGER)")
        conn.execute("INSERT INTO kept (a) VALUES (1)")
        conn.commit()
        conn.close()

        other = SQLAlchemyConnection(catalog_engine.connect())
        try:
            assert other.fetch_all("SELECT a FROM kept") == [(1,)]
        finally:
            other.close()


class TestServerErrorFrom:
    """Driver error shapes."""

    def test_psycopg3_shaped_error(self):
        orig = MagicMock()
        orig.sqlstate = "XX000"
        orig.diag.message_primary = "cache lookup failed for type 16385"

        error = server_error_from(DBAPIError("INSERT", {}, orig))

        assert error.sqlstate == "XX000"
        assert error.message == "cache lookup failed for type 16385"
        assert str(error) == "[XX000] cache lookup failed for type 16385"

    def test_psycopg2_shaped_error(self):
        class Psycopg2Error(Exception):
            pgcode = "42704"
            diag = None

        error = server_error_from(DBAPIError(
            "INSERT", {}, Psycopg2Error("type with OID 16385 does not exist\nCONTEXT: unnamed portal")
        ))

        assert error.sqlstate == "42704"
        assert error.message == "type with OID 16385 does not exist"

    def test_error_without_sqlstate(self):
        error = server_error_from(DBAPIError("SELECT", {}, ValueError("boom")))

        assert error.sqlstate is None
        assert error.message == "boom"

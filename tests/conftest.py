"""
Shared fixtures: a fake PostgreSQL server and a SQLite engine with a
`pg_catalog` database attached, laid out like the real catalog tables.
"""
import os
import tempfile

import pytest
from sqlalchemy import event, text
from sqlmodel import create_engine

from tests.fake_server import FakeServer
from tests.sqlite_catalog import CATALOG_DDL


@pytest.fixture
def server():
    """Fresh in-memory server per test"""
    return FakeServer()


@pytest.fixture
def fake_conn(server):
    return server.connect()


@pytest.fixture
def catalog_engine():
    """File-based SQLite engine whose connections all see an attached pg_catalog"""
    db_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    db_file.close()
    catalog_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    catalog_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False}
    )

    @event.listens_for(engine, "connect")
    def attach_catalog(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"ATTACH DATABASE '{catalog_file.name}' AS pg_catalog")
        cursor.close()

    with engine.begin() as conn:
        for ddl in CATALOG_DDL:
            conn.execute(text(ddl))
        conn.execute(text("INSERT INTO pg_catalog.pg_namespace (oid, nspname) VALUES (2200, 'public')"))
        conn.execute(text("INSERT INTO pg_catalog.pg_namespace (oid, nspname) VALUES (16400, 'Billing')"))

    try:
        yield engine
    finally:
        try:
            engine.dispose()
        except Exception:
            pass
        for path in (db_file.name, catalog_file.name):
            try:
                os.unlink(path)
            except Exception:
                pass

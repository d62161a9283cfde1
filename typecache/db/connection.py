"""
Database connection boundary.

Everything above this module talks to a DatabaseConnection; only
SQLAlchemyConnection knows about SQLAlchemy, the DBAPI driver and how driver
errors are shaped.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError

from typecache.binding.binder import EncodedValue
from typecache.db.pg_adapt import register_encoded_value_dumper
from typecache.errors import DatabaseConnectionError, ServerError


@dataclass
class QueryResult:
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    column_names: List[str] = field(default_factory=list)
    column_oids: List[Optional[int]] = field(default_factory=list)  # None when the driver reports none
    rowcount: int = -1


class DatabaseConnection(Protocol):
    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        ...

    def batch_execute(self, sql: str) -> None:
        ...

    def fetch_all(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Tuple[Any, ...]]:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def close(self) -> None:
        ...


def server_error_from(exc: DBAPIError) -> ServerError:
    """Build a ServerError from a wrapped driver error (psycopg 3 or psycopg2 shaped)."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    diag = getattr(orig, "diag", None)
    message = getattr(diag, "message_primary", None)
    if not message:
        lines = str(orig).strip().splitlines()
        message = lines[0] if lines else type(orig).__name__
    return ServerError(message, sqlstate=sqlstate)


class SQLAlchemyConnection:
    """DatabaseConnection over one SQLAlchemy Connection."""

    def __init__(self, connection: Connection, *, use_savepoints: bool = False):
        self._conn = connection
        self.use_savepoints = use_savepoints
        # Without a psycopg 3 driver there is no way to present a parameter OID;
        # encoded values then go over the wire as untyped text.
        self.presents_oids = register_encoded_value_dumper(self._driver_connection())

    @property
    def sa_connection(self) -> Connection:
        return self._conn

    def _driver_connection(self) -> Any:
        try:
            return self._conn.connection.driver_connection
        except AttributeError:
            return None

    @contextmanager
    def _translate_errors(self):
        try:
            yield
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise DatabaseConnectionError(f"Connection lost: {exc.orig}") from exc
            raise server_error_from(exc) from exc

    def _prepare(self, params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        prepared = dict(params or {})
        if not self.presents_oids:
            for key, value in prepared.items():
                if isinstance(value, EncodedValue):
                    prepared[key] = value.text
        return prepared

    def _run(self, sql: str, params: Dict[str, Any]) -> QueryResult:
        if params:
            result = self._conn.exec_driver_sql(sql, params)
        else:
            result = self._conn.exec_driver_sql(sql)

        if not result.returns_rows:
            return QueryResult(rowcount=result.rowcount)

        # DBAPI description entries are (name, type_code, ...); PostgreSQL drivers report the type OID
        description = result.cursor.description or ()
        column_oids = [col[1] for col in description]
        column_names = list(result.keys())
        rows = [tuple(row) for row in result.fetchall()]
        return QueryResult(
            rows=rows,
            column_names=column_names,
            column_oids=column_oids,
            rowcount=result.rowcount,
        )

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        prepared = self._prepare(params)
        with self._translate_errors():
            if self.use_savepoints:
                # A rejected attempt only rolls back its savepoint, so a retry can still run
                with self._conn.begin_nested():
                    return self._run(sql, prepared)
            return self._run(sql, prepared)

    def batch_execute(self, sql: str) -> None:
        with self._translate_errors():
            self._conn.exec_driver_sql(sql)

    def fetch_all(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Tuple[Any, ...]]:
        with self._translate_errors():
            result = self._conn.execute(text(sql), dict(params or {}))
            return [tuple(row) for row in result.fetchall()]

    def commit(self) -> None:
        with self._translate_errors():
            self._conn.commit()

    def rollback(self) -> None:
        with self._translate_errors():
            self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

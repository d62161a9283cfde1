"""
TypedConnection: one database connection plus the type cache it owns.

The cache lives and dies with the connection. Use is exclusive: a second
caller entering while a call is in flight gets ConcurrentUseError right away
instead of racing the first caller's resolve/invalidate.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple, Type, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from typecache.binding.binder import Statement, StatementBinder
from typecache.cache.type_cache import TypeCache
from typecache.catalog.fetcher import CatalogFetcher
from typecache.config import Config
from typecache.db.connection import DatabaseConnection, QueryResult, SQLAlchemyConnection
from typecache.errors import ConcurrentUseError, DatabaseConnectionError, DecodingError
from typecache.models.descriptors import TypeDescriptor
from typecache.recovery.detector import StalenessDetector
from typecache.recovery.policy import RecoveryPolicy

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    column_names: List[str] = field(default_factory=list)
    rowcount: int = -1


class TypedConnection:
    def __init__(self, connection: DatabaseConnection, config: Optional[Config] = None,
                 fetcher: Optional[CatalogFetcher] = None,
                 enum_classes: Optional[Mapping[str, Type[Enum]]] = None,
                 engine: Optional[Engine] = None):
        self.config = config or Config(load_env_file=False)
        self.connection = connection
        self.cache = TypeCache(
            connection,
            fetcher,
            default_schema=self.config.default_schema,
            max_age=self.config.descriptor_max_age,
        )
        self.binder = StatementBinder(enum_classes, default_schema=self.config.default_schema)
        self.policy = RecoveryPolicy(
            connection,
            self.cache,
            self.binder,
            StalenessDetector(),
            on_recovery=self.config.on_recovery,
        )
        self._engine = engine
        self._guard = threading.Lock()
        self.closed = False

    @contextmanager
    def _exclusive(self):
        if self.closed:
            raise DatabaseConnectionError("TypedConnection is closed")
        if not self._guard.acquire(blocking=False):
            raise ConcurrentUseError("TypedConnection is already in use by another caller")
        try:
            yield
        finally:
            self._guard.release()

    def execute(self, statement: Union[Statement, str],
                params: Optional[Mapping[str, Any]] = None) -> ExecutionResult:
        """Execute with single-retry staleness recovery, then decode user-defined columns."""
        if isinstance(statement, str):
            statement = Statement(statement)
        with self._exclusive():
            result = self.policy.execute_with_recovery(statement, params)
            return ExecutionResult(
                rows=self._decode_rows(result),
                column_names=result.column_names,
                rowcount=result.rowcount,
            )

    def batch_execute(self, sql: str) -> None:
        with self._exclusive():
            self.connection.batch_execute(sql)

    def resolve(self, name: str) -> TypeDescriptor:
        with self._exclusive():
            return self.cache.resolve(name)

    def invalidate(self, name: str) -> bool:
        with self._exclusive():
            return self.cache.invalidate(name)

    def invalidate_all(self) -> None:
        with self._exclusive():
            self.cache.invalidate_all()

    def register_enum(self, type_name: str, enum_cls: Type[Enum]) -> None:
        self.binder.register_enum(type_name, enum_cls)

    def _decode_rows(self, result: QueryResult) -> List[Tuple[Any, ...]]:
        rows = []
        for row in result.rows:
            try:
                rows.append(self.binder.decode(row, result.column_oids, resolve_oid=self.cache.resolve_oid))
            except DecodingError as e:
                # The statement already ran; refresh the type and decode again, never re-execute
                if not e.type_name or not e.refetchable:
                    raise
                logger.warning(f"Result does not match cached type {e.type_name}; refetching it")
                self.cache.invalidate(e.type_name)
                self.cache.resolve(e.type_name)
                rows.append(self.binder.decode(row, result.column_oids, resolve_oid=self.cache.resolve_oid))
        return rows

    def commit(self) -> None:
        """Commit the caller-owned transaction (savepoint mode). A no-op in autocommit."""
        with self._exclusive():
            self.connection.commit()

    def rollback(self) -> None:
        with self._exclusive():
            self.connection.rollback()

    def close(self) -> None:
        """Close the connection and drop the cache. Uncommitted work is rolled back."""
        if self.closed:
            return
        self.cache.invalidate_all()
        self.connection.close()
        if self._engine is not None:
            self._engine.dispose()
        self.closed = True

    def __enter__(self) -> "TypedConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def connect(url: Optional[str] = None, config: Optional[Config] = None,
            enum_classes: Optional[Mapping[str, Type[Enum]]] = None) -> TypedConnection:
    """
    Open a fresh connection with its own, empty type cache.

    Connections run in autocommit unless savepoints are enabled, in which case
    the caller owns the transaction (commit()/rollback()) and each attempt runs
    in a savepoint.
    """
    config = config or Config()
    url = url or config.database_url
    if not url:
        raise ValueError("No database URL given. Set TYPECACHE_DATABASE_URL environment variable")

    url = normalize_url(url)
    engine = create_engine(url, connect_args=_connect_args(url, config), pool_pre_ping=True)
    sa_connection = engine.connect()
    if not config.use_savepoints:
        sa_connection = sa_connection.execution_options(isolation_level="AUTOCOMMIT")

    logger.debug(f"Connected to {engine.url.render_as_string(hide_password=True)}")
    connection = SQLAlchemyConnection(sa_connection, use_savepoints=config.use_savepoints)
    return TypedConnection(connection, config, enum_classes=enum_classes, engine=engine)


def normalize_url(url: str) -> str:
    """Plain postgresql:// URLs use the psycopg 3 driver, which presents parameter OIDs."""
    parsed = make_url(url)
    if parsed.drivername in ("postgresql", "postgres"):
        parsed = parsed.set(drivername="postgresql+psycopg")
    return parsed.render_as_string(hide_password=False)


def _connect_args(url: str, config: Config) -> dict:
    if make_url(url).get_backend_name() != "postgresql":
        return {}
    return config.connect_args()

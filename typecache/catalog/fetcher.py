"""
Type catalog fetcher.

Stateless: every call is a fresh read of the server catalog. Caching is the
TypeCache's job, which keeps this trivially testable against a fake catalog.
"""
import logging
from typing import Any, Optional, Tuple

from typecache.catalog import queries
from typecache.db.connection import DatabaseConnection
from typecache.errors import CatalogLookupError, TypeCacheError
from typecache.models.descriptors import (
    CompositeField,
    CompositeKind,
    EnumKind,
    ScalarKind,
    TypeDescriptor,
    TypeKind,
    TypeName,
)
from typecache.models.enums import TypeCategory

logger = logging.getLogger(__name__)


class CatalogFetcher:
    """Resolves type names and OIDs to TypeDescriptors through catalog queries."""

    def fetch(self, connection: DatabaseConnection, type_name: TypeName,
              epoch: int = 0) -> TypeDescriptor:
        """Fetch the descriptor for `type_name`, stamped with `epoch`."""
        rows = self._query(
            connection,
            queries.TYPE_BY_NAME,
            {"type_name": type_name.name, "schema_name": type_name.schema},
            type_name=type_name.qualified,
        )
        if not rows:
            raise CatalogLookupError(
                f"Type '{type_name.qualified}' does not exist",
                type_name=type_name.qualified,
            )
        return self._build(connection, rows[0], epoch)

    def fetch_by_oid(self, connection: DatabaseConnection, type_oid: int,
                     epoch: int = 0) -> TypeDescriptor:
        """Fetch the descriptor for the type the server currently has under `type_oid`."""
        rows = self._query(
            connection,
            queries.TYPE_BY_OID,
            {"type_oid": type_oid},
            type_oid=type_oid,
        )
        if not rows:
            raise CatalogLookupError(
                f"No type with OID {type_oid}",
                type_oid=type_oid,
            )
        return self._build(connection, rows[0], epoch)

    def _build(self, connection: DatabaseConnection, row: Tuple[Any, ...],
               epoch: int) -> TypeDescriptor:
        oid, name, schema, typtype, relid = row
        oid = int(oid)
        qualified = f"{schema}.{name}"
        category = TypeCategory.from_typtype(str(typtype))

        kind: TypeKind
        if category is TypeCategory.ENUM:
            label_rows = self._query(
                connection, queries.ENUM_LABELS, {"type_oid": oid}, type_name=qualified
            )
            kind = EnumKind(labels=tuple(str(r[0]) for r in label_rows))
        elif category is TypeCategory.COMPOSITE:
            field_rows = self._query(
                connection, queries.COMPOSITE_FIELDS, {"relation_oid": int(relid)}, type_name=qualified
            )
            kind = CompositeKind(
                fields=tuple(CompositeField(name=str(r[0]), type_oid=int(r[1])) for r in field_rows)
            )
        else:
            kind = ScalarKind()

        descriptor = TypeDescriptor(name=str(name), schema=str(schema), oid=oid, kind=kind, epoch=epoch)
        logger.debug(f"Fetched {category.value} type {qualified} (oid={oid}, epoch={epoch})")
        return descriptor

    @staticmethod
    def _query(connection: DatabaseConnection, sql: str, params: dict,
               type_name: Optional[str] = None, type_oid: Optional[int] = None):
        try:
            return connection.fetch_all(sql, params)
        except TypeCacheError as e:
            target = type_name if type_name is not None else f"OID {type_oid}"
            raise CatalogLookupError(
                f"Catalog query for {target} failed: {e}",
                type_name=type_name,
                type_oid=type_oid,
            ) from e

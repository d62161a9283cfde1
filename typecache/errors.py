"""
Exception taxonomy for the type cache.

Every error carries enough context (type name, attempted identifier,
server identifier, sqlstate) to diagnose a failure without re-running it.
"""
from typing import Optional


class TypeCacheError(Exception):
    """Base class for every error raised by typecache."""


class CatalogLookupError(TypeCacheError):
    """The type does not exist, or the catalog query itself failed."""

    def __init__(self, message: str, *, type_name: Optional[str] = None,
                 type_oid: Optional[int] = None):
        self.type_name = type_name
        self.type_oid = type_oid
        super().__init__(message)


class EncodingError(TypeCacheError):
    """A value is incompatible with the descriptor it is bound against."""

    def __init__(self, message: str, *, type_name: Optional[str] = None,
                 parameter: Optional[str] = None):
        self.type_name = type_name
        self.parameter = parameter
        super().__init__(message)


class DecodingError(TypeCacheError):
    """A result value does not fit the cached descriptor for its column."""

    def __init__(self, message: str, *, type_name: Optional[str] = None,
                 value: Optional[str] = None, refetchable: bool = True):
        self.type_name = type_name
        self.value = value
        # False when refetching the server type cannot help
        self.refetchable = refetchable
        super().__init__(message)


class ServerError(TypeCacheError):
    """The server rejected a statement."""

    def __init__(self, message: str, *, sqlstate: Optional[str] = None):
        self.sqlstate = sqlstate
        self.message = message
        super().__init__(f"[{sqlstate}] {message}" if sqlstate else message)


class PersistentSchemaMismatchError(TypeCacheError):
    """Staleness was reported again after the single allowed retry."""

    def __init__(self, message: str, *, type_name: Optional[str] = None,
                 attempted_oid: Optional[int] = None,
                 server_oid: Optional[int] = None):
        self.type_name = type_name
        self.attempted_oid = attempted_oid
        self.server_oid = server_oid
        super().__init__(message)


class DatabaseConnectionError(TypeCacheError, ConnectionError):
    """Transport-level failure. Never retried by this layer."""


class ConcurrentUseError(TypeCacheError):
    """Two callers tried to use the same connection-scoped cache at once."""

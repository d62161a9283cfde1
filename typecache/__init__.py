"""
typecache: connection-scoped cache of server type descriptors that notices
when a type is dropped and recreated under the same name, and recovers.
"""
from typecache.binding import Statement, StatementBinder
from typecache.cache import TypeCache
from typecache.catalog import CatalogFetcher
from typecache.config import Config
from typecache.errors import (
    CatalogLookupError,
    ConcurrentUseError,
    DatabaseConnectionError,
    DecodingError,
    EncodingError,
    PersistentSchemaMismatchError,
    ServerError,
    TypeCacheError,
)
from typecache.models import TypeDescriptor, TypeName
from typecache.recovery import RecoveryCounter, RecoveryEvent, RecoveryPolicy, StalenessDetector
from typecache.session import ExecutionResult, TypedConnection, connect

__version__ = "0.1.0"

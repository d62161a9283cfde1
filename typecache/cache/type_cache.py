"""
Connection-scoped type descriptor cache.

One TypeCache belongs to exactly one connection and dies with it. It is never
shared: another connection's invalidation must not race a statement that is
still relying on an identifier this connection cached.

Invariants:
- at most one descriptor per qualified type name;
- an OID maps to at most one name at a time;
- a name's epoch grows by exactly one on every (re)fetch and is never reused,
  not even after invalidate_all().
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from typecache.catalog.fetcher import CatalogFetcher
from typecache.db.connection import DatabaseConnection
from typecache.models.descriptors import DEFAULT_SCHEMA, TypeDescriptor, TypeName

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    invalidations: int = 0


class TypeCache:
    def __init__(self, connection: DatabaseConnection, fetcher: Optional[CatalogFetcher] = None,
                 *, default_schema: str = DEFAULT_SCHEMA, max_age: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._connection = connection
        self._fetcher = fetcher or CatalogFetcher()
        self.default_schema = default_schema
        self.max_age = max_age
        self._clock = clock

        self._by_name: Dict[str, TypeDescriptor] = {}
        self._by_oid: Dict[int, TypeDescriptor] = {}
        self._epochs: Dict[str, int] = {}  # Survives invalidation so epochs never repeat
        self._fetched_at: Dict[str, float] = {}
        self.stats = CacheStats()

    def type_name(self, name: Union[str, TypeName]) -> TypeName:
        if isinstance(name, TypeName):
            return name
        return TypeName.parse(name, self.default_schema)

    def resolve(self, name: Union[str, TypeName]) -> TypeDescriptor:
        """Return the cached descriptor for `name`, fetching it on a miss or expiry."""
        type_name = self.type_name(name)
        key = type_name.qualified

        cached = self._by_name.get(key)
        if cached is not None and not self._expired(key):
            self.stats.hits += 1
            return cached
        if cached is not None:
            logger.debug(f"Descriptor for {key} expired (epoch {cached.epoch}), refetching")

        self.stats.misses += 1
        self.stats.fetches += 1
        descriptor = self._fetcher.fetch(self._connection, type_name, epoch=self._next_epoch(key))
        return self._store(descriptor)

    def resolve_oid(self, type_oid: int) -> TypeDescriptor:
        """Reverse lookup for decoding; fetches by OID on a miss."""
        cached = self._by_oid.get(type_oid)
        if cached is not None:
            self.stats.hits += 1
            return cached

        self.stats.misses += 1
        self.stats.fetches += 1
        descriptor = self._fetcher.fetch_by_oid(self._connection, type_oid)
        return self._store(descriptor)

    def lookup(self, name: Union[str, TypeName]) -> Optional[TypeDescriptor]:
        """Cached descriptor for `name`, without fetching."""
        return self._by_name.get(self.type_name(name).qualified)

    def lookup_oid(self, type_oid: int) -> Optional[TypeDescriptor]:
        """Cached descriptor for `type_oid`, without fetching."""
        return self._by_oid.get(type_oid)

    def epoch(self, name: Union[str, TypeName]) -> int:
        """Last epoch handed out for `name` (0 if never fetched)."""
        return self._epochs.get(self.type_name(name).qualified, 0)

    def invalidate(self, name: Union[str, TypeName]) -> bool:
        """Drop the entry for `name`. Returns True if there was one."""
        key = self.type_name(name).qualified
        descriptor = self._by_name.pop(key, None)
        self._fetched_at.pop(key, None)
        if descriptor is None:
            return False

        if self._by_oid.get(descriptor.oid) is descriptor:
            del self._by_oid[descriptor.oid]
        self.stats.invalidations += 1
        logger.info(f"Invalidated cached type {key} (oid={descriptor.oid}, epoch={descriptor.epoch})")
        return True

    def invalidate_all(self) -> None:
        """Drop every entry; the next resolve of any name refetches."""
        count = len(self._by_name)
        self._by_name.clear()
        self._by_oid.clear()
        self._fetched_at.clear()
        self.stats.invalidations += count
        logger.info(f"Invalidated all {count} cached type(s)")

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, TypeName)):
            return False
        return self.type_name(name).qualified in self._by_name

    def _next_epoch(self, key: str) -> int:
        return self._epochs.get(key, 0) + 1

    def _expired(self, key: str) -> bool:
        if self.max_age is None:
            return False
        return self._clock() - self._fetched_at.get(key, float("-inf")) > self.max_age

    def _store(self, descriptor: TypeDescriptor) -> TypeDescriptor:
        key = descriptor.qualified_name
        epoch = self._next_epoch(key)
        if descriptor.epoch != epoch:
            descriptor = descriptor.with_epoch(epoch)

        previous = self._by_name.get(key)
        if previous is not None and self._by_oid.get(previous.oid) is previous:
            del self._by_oid[previous.oid]

        # The server may hand a dropped type's OID to a different type
        displaced = self._by_oid.get(descriptor.oid)
        if displaced is not None and displaced.qualified_name != key:
            logger.info(f"OID {descriptor.oid} moved from {displaced.qualified_name} to {key}")
            self._by_name.pop(displaced.qualified_name, None)
            self._fetched_at.pop(displaced.qualified_name, None)

        self._by_name[key] = descriptor
        self._by_oid[descriptor.oid] = descriptor
        self._epochs[key] = epoch
        self._fetched_at[key] = self._clock()

        if previous is not None and previous.oid != descriptor.oid:
            logger.info(f"Type {key} changed OID {previous.oid} -> {descriptor.oid} (epoch {epoch})")
        return descriptor

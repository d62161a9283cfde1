"""
psycopg 3 adaptation for encoded user-defined values.

psycopg sends parameters with the extended query protocol, and the type OID
of each parameter goes into the Parse message. Dumping an EncodedValue with
its descriptor's OID is what lets the server notice a stale identifier
instead of silently inferring the type from context.
"""
from typing import Any

import psycopg
from psycopg.adapt import Dumper
from psycopg.pq import Format

from typecache.binding.binder import EncodedValue


class EncodedValueDumper(Dumper):
    """Dumps EncodedValue as text, typed with the value's own OID."""

    format = Format.TEXT

    def get_key(self, obj: EncodedValue, format: Any) -> Any:
        # Different OIDs need different dumpers; psycopg caches them by this key
        return (self.cls, obj.oid)

    def upgrade(self, obj: EncodedValue, format: Any) -> "EncodedValueDumper":
        dumper = type(self)(self.cls, self.connection)
        dumper.oid = obj.oid
        return dumper

    def dump(self, obj: EncodedValue) -> bytes:
        return obj.text.encode()


def register_encoded_value_dumper(driver_connection: Any) -> bool:
    """Register the dumper on a psycopg 3 connection. Returns False for any other driver."""
    if not isinstance(driver_connection, psycopg.Connection):
        return False
    driver_connection.adapters.register_dumper(EncodedValue, EncodedValueDumper)
    return True

"""
Statement binding and result decoding against cached type descriptors.

The binder never talks to the server. It turns caller values into values
tagged with the descriptor's identifier, and turns result values back into
labels, Python enum members or field mappings. Anything it can prove wrong
locally (unknown label, wrong composite arity) fails here, before a round trip.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from typecache.binding.records import format_record, parse_record
from typecache.errors import DecodingError, EncodingError
from typecache.models.descriptors import (
    DEFAULT_SCHEMA,
    CompositeKind,
    EnumKind,
    TypeDescriptor,
    TypeName,
    quote_ident,
)
from typecache.models.sa_types import enum_label, enum_member

# OIDs below this are built-in types; they never need a catalog lookup
FIRST_NORMAL_OBJECT_ID = 16384


@dataclass(frozen=True)
class EncodedValue:
    """A user-defined value ready for the wire, tagged with the OID it was encoded against."""
    oid: int
    text: str
    type_name: str


@dataclass(frozen=True)
class Statement:
    """SQL with `%(name)s` placeholders plus the user-defined type of each typed parameter."""
    sql: str
    param_types: Mapping[str, str] = field(default_factory=dict)

    @property
    def type_names(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(self.param_types.values()))

    @classmethod
    def insert(cls, table: str, columns: Mapping[str, Optional[str]]) -> Statement:
        """INSERT with one parameter per column; a column maps to its type name or None."""
        names = ", ".join(quote_ident(c) for c in columns)
        values = ", ".join(f"%({c})s" for c in columns)
        sql = f"INSERT INTO {quote_ident(table)} ({names}) VALUES ({values})"
        param_types = {c: t for c, t in columns.items() if t is not None}
        return cls(sql=sql, param_types=param_types)

    @classmethod
    def select(cls, table: str, columns: Sequence[str]) -> Statement:
        names = ", ".join(quote_ident(c) for c in columns)
        return cls(sql=f"SELECT {names} FROM {quote_ident(table)}")


@dataclass(frozen=True)
class BoundStatement:
    sql: str
    parameters: Dict[str, Any]
    descriptors: Tuple[TypeDescriptor, ...]  # Borrowed for this execution only


class StatementBinder:
    def __init__(self, enum_classes: Optional[Mapping[str, Type[Enum]]] = None,
                 default_schema: str = DEFAULT_SCHEMA):
        self.default_schema = default_schema
        self._enum_classes: Dict[str, Type[Enum]] = {}
        for type_name, enum_cls in (enum_classes or {}).items():
            self.register_enum(type_name, enum_cls)

    def register_enum(self, type_name: str, enum_cls: Type[Enum]) -> None:
        """Decode labels of `type_name` into members of `enum_cls`."""
        key = TypeName.parse(type_name, self.default_schema).qualified
        self._enum_classes[key] = enum_cls

    # Binding

    def bind(self, statement: Statement, params: Optional[Mapping[str, Any]],
             descriptors: Mapping[str, TypeDescriptor]) -> BoundStatement:
        """
        Encode every typed parameter of `statement` with its resolved descriptor.

        `descriptors` is keyed by the type names exactly as they appear in
        `statement.param_types`.
        """
        bound = dict(params or {})
        used: Dict[str, TypeDescriptor] = {}

        for parameter, type_name in statement.param_types.items():
            if parameter not in bound:
                raise EncodingError(
                    f"Missing value for parameter '{parameter}'",
                    type_name=type_name,
                    parameter=parameter,
                )
            descriptor = descriptors.get(type_name)
            if descriptor is None:
                raise EncodingError(
                    f"No descriptor resolved for type '{type_name}'",
                    type_name=type_name,
                    parameter=parameter,
                )
            bound[parameter] = self.encode(descriptor, bound[parameter], parameter=parameter)
            used[descriptor.qualified_name] = descriptor

        return BoundStatement(
            sql=statement.sql,
            parameters=bound,
            descriptors=tuple(used.values()),
        )

    def encode(self, descriptor: TypeDescriptor, value: Any,
               parameter: Optional[str] = None) -> Any:
        if value is None:
            return None

        kind = descriptor.kind
        if isinstance(kind, EnumKind):
            try:
                label = enum_label(value)
            except EncodingError as e:
                raise EncodingError(
                    f"Cannot bind {type(value).__name__} to enum {descriptor.qualified_name}",
                    type_name=descriptor.qualified_name,
                    parameter=parameter,
                ) from e
            if label not in kind.labels:
                raise EncodingError(
                    f"'{label}' is not a label of enum {descriptor.qualified_name} "
                    f"(labels: {', '.join(kind.labels)})",
                    type_name=descriptor.qualified_name,
                    parameter=parameter,
                )
            return EncodedValue(oid=descriptor.oid, text=label, type_name=descriptor.qualified_name)

        if isinstance(kind, CompositeKind):
            values = self._composite_values(descriptor, kind, value, parameter)
            return EncodedValue(
                oid=descriptor.oid,
                text=format_record(values),
                type_name=descriptor.qualified_name,
            )

        # Scalars go to the driver's own codec
        return value

    def _composite_values(self, descriptor: TypeDescriptor, kind: CompositeKind,
                          value: Any, parameter: Optional[str]) -> List[Any]:
        names = kind.field_names
        if isinstance(value, Mapping):
            unknown = sorted(set(value) - set(names))
            if unknown:
                raise EncodingError(
                    f"Unknown field(s) {', '.join(unknown)} for composite {descriptor.qualified_name}",
                    type_name=descriptor.qualified_name,
                    parameter=parameter,
                )
            return [value.get(name) for name in names]

        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            raise EncodingError(
                f"Composite {descriptor.qualified_name} needs a sequence or mapping, "
                f"got {type(value).__name__}",
                type_name=descriptor.qualified_name,
                parameter=parameter,
            )
        if len(value) != len(names):
            raise EncodingError(
                f"Composite {descriptor.qualified_name} has {len(names)} fields, got {len(value)} values",
                type_name=descriptor.qualified_name,
                parameter=parameter,
            )
        return list(value)

    # Decoding

    def decode(self, row: Sequence[Any], column_oids: Sequence[Optional[int]],
               descriptors: Optional[Mapping[int, TypeDescriptor]] = None,
               resolve_oid: Optional[Callable[[int], Optional[TypeDescriptor]]] = None) -> Tuple[Any, ...]:
        """
        Decode one result row.

        Each column is decoded against the descriptor for its server-reported
        OID: first from `descriptors`, then through `resolve_oid` (the cache's
        reverse lookup, which fetches on a miss). Built-in OIDs pass through.
        """
        descriptors = descriptors or {}
        decoded = []
        for index, value in enumerate(row):
            oid = column_oids[index] if index < len(column_oids) else None
            descriptor = self._descriptor_for(oid, descriptors, resolve_oid)
            decoded.append(self.decode_value(descriptor, value))
        return tuple(decoded)

    @staticmethod
    def _descriptor_for(oid: Optional[int], descriptors: Mapping[int, TypeDescriptor],
                        resolve_oid: Optional[Callable[[int], Optional[TypeDescriptor]]]) -> Optional[TypeDescriptor]:
        if oid is None or oid < FIRST_NORMAL_OBJECT_ID:
            return None
        descriptor = descriptors.get(oid)
        if descriptor is None and resolve_oid is not None:
            descriptor = resolve_oid(oid)
        return descriptor

    def decode_value(self, descriptor: Optional[TypeDescriptor], value: Any) -> Any:
        if value is None or descriptor is None:
            return value

        kind = descriptor.kind
        if isinstance(kind, EnumKind):
            enum_cls = self._enum_classes.get(descriptor.qualified_name)
            if isinstance(value, Enum):
                return value
            label = str(value)
            if label not in kind.labels:
                raise DecodingError(
                    f"'{label}' is not a known label of enum {descriptor.qualified_name}",
                    type_name=descriptor.qualified_name,
                    value=label,
                )
            if enum_cls is None:
                return label
            try:
                return enum_member(enum_cls, label)
            except DecodingError as e:
                # The server label is valid; the registered Python class is what lags behind
                raise DecodingError(
                    f"'{label}' of enum {descriptor.qualified_name} has no member in {enum_cls.__name__}",
                    type_name=descriptor.qualified_name,
                    value=label,
                    refetchable=False,
                ) from e

        if isinstance(kind, CompositeKind):
            if isinstance(value, str):
                try:
                    fields = parse_record(value)
                except ValueError as e:
                    raise DecodingError(
                        str(e), type_name=descriptor.qualified_name, value=value
                    ) from e
            else:
                fields = list(value)
            if len(fields) != len(kind.fields):
                raise DecodingError(
                    f"Composite {descriptor.qualified_name} has {len(kind.fields)} fields, "
                    f"result has {len(fields)}",
                    type_name=descriptor.qualified_name,
                    value=str(value),
                )
            return dict(zip(kind.field_names, fields))

        return value

"""
Server-side type descriptors.

A descriptor is what the cache knows about one user-visible type: its
qualified name, the identifier (OID) the server assigned to it, and its
structural kind. The kind is a closed set of variants (enum, composite,
scalar) rather than a class hierarchy, because the catalog only ever
reports those three shapes.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import re
from typing import Tuple, Union

from .enums import TypeCategory

DEFAULT_SCHEMA = "public"

_PLAIN_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_\$]*$")


def quote_ident(name: str) -> str:
    """Quote an identifier unless it is already a plain lower-case one."""
    if _PLAIN_IDENTIFIER.match(name):
        return name
    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True)
class EnumKind:
    labels: Tuple[str, ...]

    category = TypeCategory.ENUM


@dataclass(frozen=True)
class CompositeField:
    name: str
    type_oid: int


@dataclass(frozen=True)
class CompositeKind:
    fields: Tuple[CompositeField, ...]

    category = TypeCategory.COMPOSITE

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)


@dataclass(frozen=True)
class ScalarKind:
    category = TypeCategory.SCALAR


TypeKind = Union[EnumKind, CompositeKind, ScalarKind]


@dataclass(frozen=True)
class TypeName:
    """A schema-qualified type name, folded the way PostgreSQL folds identifiers."""
    schema: str
    name: str

    @classmethod
    def parse(cls, raw: str, default_schema: str = DEFAULT_SCHEMA) -> TypeName:
        """
        Parse `name`, `schema.name` or their double-quoted forms.

        Unquoted parts are lower-cased; quoted parts keep their case and may
        contain dots. A doubled quote inside a quoted part is a literal quote.
        """
        if not raw or not raw.strip():
            raise ValueError("Type name must not be empty")

        parts = []
        current = ""
        quoted = False
        in_quote = False
        text = raw.strip()
        i = 0
        while i < len(text):
            ch = text[i]
            if in_quote:
                if ch == '"':
                    if i + 1 < len(text) and text[i + 1] == '"':
                        current += '"'
                        i += 1
                    else:
                        in_quote = False
                else:
                    current += ch
            elif ch == '"':
                in_quote = True
                quoted = True
            elif ch == ".":
                parts.append(current if quoted else current.lower())
                current = ""
                quoted = False
            else:
                current += ch
            i += 1

        if in_quote:
            raise ValueError(f"Unterminated quoted identifier in type name '{raw}'")
        parts.append(current if quoted else current.lower())

        if len(parts) > 2 or any(not p for p in parts):
            raise ValueError(f"Invalid type name '{raw}'")
        if len(parts) == 1:
            return cls(schema=default_schema, name=parts[0])
        return cls(schema=parts[0], name=parts[1])

    @property
    def qualified(self) -> str:
        """Round-trips through parse(): mixed-case parts come back quoted."""
        return f"{quote_ident(self.schema)}.{quote_ident(self.name)}"

    def __str__(self) -> str:
        return self.qualified


@dataclass(frozen=True)
class TypeDescriptor:
    """
    Everything the cache knows about one server type.

    `epoch` is assigned by the cache, never by the server: it starts at 1 for
    the first fetch of a name and grows by one on every refresh. A fetcher
    that has not been told an epoch leaves it at 0.
    """
    name: str
    schema: str
    oid: int
    kind: TypeKind = field(default_factory=ScalarKind)
    epoch: int = 0

    @property
    def qualified_name(self) -> str:
        return self.type_name.qualified

    @property
    def type_name(self) -> TypeName:
        return TypeName(schema=self.schema, name=self.name)

    @property
    def category(self) -> TypeCategory:
        return self.kind.category

    @property
    def members(self) -> Tuple[str, ...]:
        """Enum labels or composite field names, in server order."""
        if isinstance(self.kind, EnumKind):
            return self.kind.labels
        if isinstance(self.kind, CompositeKind):
            return self.kind.field_names
        return ()

    def with_epoch(self, epoch: int) -> TypeDescriptor:
        """Return a copy stamped with a cache epoch."""
        return replace(self, epoch=epoch)

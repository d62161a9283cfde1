from __future__ import annotations

from enum import Enum as PyEnum
from typing import Any, Optional, Type

from sqlalchemy.types import String, TypeDecorator

from typecache.errors import DecodingError, EncodingError


def enum_member(enum_cls: Type[PyEnum], label: str) -> PyEnum:
    """
    Map a server enum label onto a Python enum member.

    Labels are matched against member values first, then member names, so both
    `MyEnum.ONE = "one"` and a bare `ONE` member line up with label 'one'/'ONE'.
    """
    try:
        return enum_cls(label)
    except ValueError:
        pass
    try:
        return enum_cls[label]
    except KeyError:
        pass
    for member in enum_cls:
        if member.name.lower() == label.lower():
            return member
    raise DecodingError(
        f"Label '{label}' has no member in {enum_cls.__name__}",
        type_name=enum_cls.__name__,
        refetchable=False,
        value=label,
    )


def enum_label(value: Any) -> str:
    """The label a Python enum member (or plain string) binds as."""
    if isinstance(value, PyEnum):
        return str(value.value) if isinstance(value.value, str) else value.name
    if isinstance(value, str):
        return value
    raise EncodingError(
        f"Expected an Enum member or str for an enum label, got {type(value).__name__}"
    )


class EnumLabelString(TypeDecorator):
    """
    Maps a Python Enum onto a server enum column read as text.

    Used on the ORM side (SQLModel tables) where the column value comes back
    as the label string. Binding accepts members, labels and member names.
    """

    impl = String
    cache_ok = True

    def __init__(self, enum_cls: Type[PyEnum], *, length: int = 63) -> None:
        self._enum_cls = enum_cls
        super().__init__(length=length)

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None

        if isinstance(value, self._enum_cls):
            return enum_label(value)

        if isinstance(value, str):
            try:
                return enum_label(enum_member(self._enum_cls, value))
            except DecodingError as e:
                raise EncodingError(
                    f"Invalid value '{value}' for enum {self._enum_cls.__name__}"
                ) from e

        raise EncodingError(
            f"Expected {self._enum_cls.__name__} or str, got {type(value).__name__}"
        )

    def process_result_value(self, value: Any, dialect: Any) -> Optional[PyEnum]:
        if value is None:
            return None

        if isinstance(value, self._enum_cls):
            return value

        if isinstance(value, str):
            return enum_member(self._enum_cls, value)

        raise DecodingError(
            f"Expected DB value str for enum {self._enum_cls.__name__}, got {type(value).__name__}"
        )

from .descriptors import (
    CompositeField,
    CompositeKind,
    EnumKind,
    ScalarKind,
    TypeDescriptor,
    TypeKind,
    TypeName,
)
from .enums import AttemptState, RecoveryOutcome, TypeCategory

__all__ = [
    "AttemptState",
    "CompositeField",
    "CompositeKind",
    "EnumKind",
    "RecoveryOutcome",
    "ScalarKind",
    "TypeCategory",
    "TypeDescriptor",
    "TypeKind",
    "TypeName",
]

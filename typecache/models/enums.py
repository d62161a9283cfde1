from enum import Enum


class TypeCategory(str, Enum):
    ENUM = "enum"
    COMPOSITE = "composite"
    SCALAR = "scalar"

    @classmethod
    def from_typtype(cls, typtype: str) -> "TypeCategory":
        """Map pg_type.typtype to a category. Anything not 'e' or 'c' is scalar."""
        if typtype == "e":
            return cls.ENUM
        if typtype == "c":
            return cls.COMPOSITE
        return cls.SCALAR


class AttemptState(str, Enum):
    INIT = "init"
    BOUND = "bound"
    SENT = "sent"
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"
    CLASSIFIED = "classified"
    INVALIDATED = "invalidated"
    RETRYING = "retrying"
    FATAL = "fatal"  # Terminal


class RecoveryOutcome(str, Enum):
    INVALIDATED = "invalidated"   # Cache dropped, retry about to run
    RECOVERED = "recovered"       # Retry succeeded
    FAILED = "failed"             # Retry reported staleness again

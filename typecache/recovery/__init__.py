from .detector import (
    CatalogMismatchSignal,
    Classification,
    Other,
    Stale,
    StaleUnknown,
    StalenessDetector,
    Succeeded,
)
from .policy import ExecutionRun, RecoveryCounter, RecoveryEvent, RecoveryPolicy

__all__ = [
    "CatalogMismatchSignal",
    "Classification",
    "ExecutionRun",
    "Other",
    "RecoveryCounter",
    "RecoveryEvent",
    "RecoveryPolicy",
    "Stale",
    "StaleUnknown",
    "StalenessDetector",
    "Succeeded",
]

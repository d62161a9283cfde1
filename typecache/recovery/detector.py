"""
Staleness detector.

A pure function over (descriptors used for the attempt, server response):
no I/O, no cache mutation. It decides whether a rejection means "the OID we
presented is no longer the type we think it is" and, if so, which name.

Discriminator: only two server errors count as a catalog mismatch, each
carrying the presented OID in its message:

- SQLSTATE XX000 "cache lookup failed for type <oid>"
- SQLSTATE 42704 "type with OID <oid> does not exist"

Every other failure is classified Other and handed back to the caller as-is.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from typecache.errors import ServerError
from typecache.models.descriptors import TypeDescriptor

_MISMATCH_PATTERNS = {
    "XX000": re.compile(r"cache lookup failed for type (\d+)"),
    "42704": re.compile(r"type with OID (\d+) does not exist"),
}


@dataclass(frozen=True)
class CatalogMismatchSignal:
    presented_oid: Optional[int]
    expected_oid: Optional[int] = None
    sqlstate: Optional[str] = None
    message: str = ""

    @classmethod
    def from_server_error(cls, error: BaseException) -> Optional[CatalogMismatchSignal]:
        """The mismatch signal carried by `error`, or None if it is not one."""
        if not isinstance(error, ServerError):
            return None
        pattern = _MISMATCH_PATTERNS.get(error.sqlstate or "")
        if pattern is None:
            return None
        match = pattern.search(error.message)
        if match is None:
            return None
        return cls(presented_oid=int(match.group(1)), sqlstate=error.sqlstate, message=error.message)


@dataclass(frozen=True)
class Succeeded:
    pass


@dataclass(frozen=True)
class Stale:
    name: str
    signal: CatalogMismatchSignal
    attempted: TypeDescriptor


@dataclass(frozen=True)
class StaleUnknown:
    signal: CatalogMismatchSignal


@dataclass(frozen=True)
class Other:
    error: BaseException


Classification = Union[Succeeded, Stale, StaleUnknown, Other]


class StalenessDetector:
    def classify(self, outcome: object, attempted: Sequence[TypeDescriptor],
                 lookup_oid: Callable[[int], Optional[TypeDescriptor]]) -> Classification:
        """
        Classify the outcome of one execution attempt.

        `outcome` is the exception the attempt raised, or anything else on
        success. `attempted` are the descriptors the statement was bound with;
        `lookup_oid` is the cache's non-fetching reverse lookup. A presented
        OID the cache still maps to a name is Stale for that name; one it
        cannot map is StaleUnknown.
        """
        if not isinstance(outcome, BaseException):
            return Succeeded()

        signal = CatalogMismatchSignal.from_server_error(outcome)
        if signal is None:
            return Other(error=outcome)

        cached = lookup_oid(signal.presented_oid) if signal.presented_oid is not None else None
        if cached is None:
            # Already invalidated, or never ours
            return StaleUnknown(signal=signal)

        attempt = next((d for d in attempted if d.oid == cached.oid), cached)
        return Stale(name=cached.qualified_name, signal=signal, attempted=attempt)

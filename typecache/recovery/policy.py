"""
Recovery policy: execute a statement, recovering once from a stale type OID.

Each call walks an explicit state machine:

    Init -> Bound -> Sent -> {Succeeded | Rejected}
    Rejected -> Classified -> {Invalidated | Fatal}
    Invalidated -> Retrying -> Bound -> Sent -> ...

The second attempt is the last one. A second staleness report ends in Fatal
with PersistentSchemaMismatchError instead of another retry.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from typecache.binding.binder import BoundStatement, Statement, StatementBinder
from typecache.cache.type_cache import TypeCache
from typecache.db.connection import DatabaseConnection, QueryResult
from typecache.errors import (
    DatabaseConnectionError,
    PersistentSchemaMismatchError,
    ServerError,
    TypeCacheError,
)
from typecache.models.descriptors import TypeDescriptor
from typecache.models.enums import AttemptState, RecoveryOutcome
from typecache.recovery.detector import (
    Classification,
    Other,
    Stale,
    StaleUnknown,
    StalenessDetector,
)

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    AttemptState.INIT: {AttemptState.BOUND, AttemptState.FATAL},
    AttemptState.BOUND: {AttemptState.SENT},
    AttemptState.SENT: {AttemptState.SUCCEEDED, AttemptState.REJECTED, AttemptState.FATAL},
    AttemptState.REJECTED: {AttemptState.CLASSIFIED},
    AttemptState.CLASSIFIED: {AttemptState.INVALIDATED, AttemptState.FATAL},
    AttemptState.INVALIDATED: {AttemptState.RETRYING},
    AttemptState.RETRYING: {AttemptState.BOUND, AttemptState.FATAL},
    AttemptState.SUCCEEDED: set(),
    AttemptState.FATAL: set(),
}


@dataclass(frozen=True)
class RecoveryEvent:
    statement_sql: str
    type_names: Tuple[str, ...]
    classification: Classification
    attempt: int
    outcome: RecoveryOutcome


class RecoveryCounter:
    """Observability hook that counts recoveries. Pass an instance as `on_recovery`."""

    def __init__(self):
        self.invalidations = 0
        self.recoveries = 0
        self.failures = 0
        self.events: List[RecoveryEvent] = []

    def __call__(self, event: RecoveryEvent) -> None:
        self.events.append(event)
        if event.outcome is RecoveryOutcome.INVALIDATED:
            self.invalidations += 1
        elif event.outcome is RecoveryOutcome.RECOVERED:
            self.recoveries += 1
        elif event.outcome is RecoveryOutcome.FAILED:
            self.failures += 1


class ExecutionRun:
    """State history of one execute_with_recovery call."""

    def __init__(self, statement: Statement):
        self.statement = statement
        self.state = AttemptState.INIT
        self.history: List[AttemptState] = [AttemptState.INIT]
        self.attempts = 0

    def advance(self, state: AttemptState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal attempt transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.state]


class RecoveryPolicy:
    MAX_ATTEMPTS = 2

    def __init__(self, connection: DatabaseConnection, cache: TypeCache, binder: StatementBinder,
                 detector: Optional[StalenessDetector] = None,
                 on_recovery: Optional[Callable[[RecoveryEvent], Any]] = None):
        self._connection = connection
        self._cache = cache
        self._binder = binder
        self._detector = detector or StalenessDetector()
        self._on_recovery = on_recovery
        self.last_run: Optional[ExecutionRun] = None

    def execute_with_recovery(self, statement: Statement,
                              params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        """
        Bind and execute `statement`, retrying exactly once after a stale OID.

        A successful retry is invisible to the caller apart from the
        `on_recovery` hook and the log.
        """
        run = ExecutionRun(statement)
        self.last_run = run
        recovering: Optional[Classification] = None

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            run.attempts = attempt
            try:
                bound = self._bind(statement, params)
            except TypeCacheError:
                run.advance(AttemptState.FATAL)
                raise
            run.advance(AttemptState.BOUND)

            run.advance(AttemptState.SENT)
            try:
                result = self._connection.execute(bound.sql, bound.parameters)
            except DatabaseConnectionError:
                run.advance(AttemptState.FATAL)
                raise
            except ServerError as exc:
                run.advance(AttemptState.REJECTED)
                verdict = self._detector.classify(exc, bound.descriptors, self._cache.lookup_oid)
                run.advance(AttemptState.CLASSIFIED)

                if isinstance(verdict, Other):
                    run.advance(AttemptState.FATAL)
                    raise

                if attempt == self.MAX_ATTEMPTS:
                    run.advance(AttemptState.FATAL)
                    self._emit(statement, verdict, attempt, RecoveryOutcome.FAILED)
                    raise self._persistent_error(verdict) from exc

                # Invalidation happens only once the rejection is fully classified
                self._invalidate(verdict)
                run.advance(AttemptState.INVALIDATED)
                self._emit(statement, verdict, attempt, RecoveryOutcome.INVALIDATED)
                run.advance(AttemptState.RETRYING)
                recovering = verdict
                continue

            run.advance(AttemptState.SUCCEEDED)
            if recovering is not None:
                logger.info(f"Recovered from stale type metadata on attempt {attempt}")
                self._emit(statement, recovering, attempt, RecoveryOutcome.RECOVERED)
            return result

        raise AssertionError("retry bound exceeded")

    def _bind(self, statement: Statement, params: Optional[Mapping[str, Any]]) -> BoundStatement:
        descriptors: Dict[str, TypeDescriptor] = {
            type_name: self._cache.resolve(type_name) for type_name in statement.type_names
        }
        return self._binder.bind(statement, params, descriptors)

    def _invalidate(self, verdict: Classification) -> None:
        if isinstance(verdict, Stale):
            logger.warning(
                f"Server rejected stale OID {verdict.signal.presented_oid} for type {verdict.name}; "
                f"refetching and retrying once"
            )
            self._cache.invalidate(verdict.name)
        elif isinstance(verdict, StaleUnknown):
            logger.warning(
                f"Server rejected OID {verdict.signal.presented_oid}, which maps to no cached type; "
                f"dropping the whole type cache and retrying once"
            )
            self._cache.invalidate_all()

    def _persistent_error(self, verdict: Classification) -> PersistentSchemaMismatchError:
        signal = verdict.signal if isinstance(verdict, (Stale, StaleUnknown)) else None
        type_name = verdict.name if isinstance(verdict, Stale) else None
        attempted_oid = signal.presented_oid if signal else None
        server_oid = signal.expected_oid if signal else None
        logger.error(
            f"Type metadata still stale after retry (type={type_name}, attempted OID={attempted_oid})"
        )
        return PersistentSchemaMismatchError(
            f"Schema changed again while retrying: type {type_name or '<unknown>'} "
            f"rejected with OID {attempted_oid}"
            + (f", server expects OID {server_oid}" if server_oid is not None else ""),
            type_name=type_name,
            attempted_oid=attempted_oid,
            server_oid=server_oid,
        )

    def _emit(self, statement: Statement, verdict: Classification, attempt: int,
              outcome: RecoveryOutcome) -> None:
        if self._on_recovery is None:
            return
        self._on_recovery(RecoveryEvent(
            statement_sql=statement.sql,
            type_names=statement.type_names,
            classification=verdict,
            attempt=attempt,
            outcome=outcome,
        ))

"""
Unit of work: change tracking for a session and the per-call transaction
scope built on top of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Generic, Iterable, Optional, TypeVar

from ..core.model import Entity
from ..errors import PersonnelError, StorageUnavailable, TransactionError
from ..utils import get_logger, set_correlation_id

if TYPE_CHECKING:
    from .database import Database
    from .session import Session

T = TypeVar("T")


class ChangeSet:
    """
    Tracks new, dirty and deleted instances within a session.

    Instances are tracked by object identity. Entity equality follows the
    business-key policy, which would merge two distinct unsaved rows that
    happen to share a key.
    """

    def __init__(self) -> None:
        self.new: Dict[int, Entity] = {}
        self.dirty: Dict[int, Entity] = {}
        self.deleted: Dict[int, Entity] = {}

    # Registration methods ----------------------------------------------
    def register_new(self, instance: Entity) -> None:
        if id(instance) not in self.deleted:
            self.new[id(instance)] = instance

    def register_dirty(self, instance: Entity) -> None:
        if id(instance) not in self.new and id(instance) not in self.deleted:
            self.dirty[id(instance)] = instance

    def register_deleted(self, instance: Entity) -> None:
        self.new.pop(id(instance), None)
        self.dirty.pop(id(instance), None)
        if instance.pk is not None:
            self.deleted[id(instance)] = instance

    def discard_new(self, instance: Entity) -> None:
        self.new.pop(id(instance), None)

    def collect_dirty(self, candidates: Iterable[Entity]) -> None:
        for instance in candidates:
            if instance.pk is not None and instance.is_dirty():
                self.register_dirty(instance)

    def is_new(self, instance: Entity) -> bool:
        return id(instance) in self.new

    def is_deleted(self, instance: Entity) -> bool:
        return id(instance) in self.deleted

    def clear(self) -> None:
        self.new.clear()
        self.dirty.clear()
        self.deleted.clear()


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of one unit of work: either a value or the typed failure that
    rolled it back.
    """

    value: Optional[T] = None
    error: Optional[PersonnelError] = None
    correlation_id: Optional[str] = None

    @classmethod
    def success(cls, value: T, correlation_id: Optional[str] = None) -> "Outcome[T]":
        return cls(value=value, correlation_id=correlation_id)

    @classmethod
    def failure(cls, error: PersonnelError, correlation_id: Optional[str] = None) -> "Outcome[T]":
        return cls(error=error, correlation_id=correlation_id)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class UnitOfWork:
    """
    One transaction scope around one logical operation.

    Entering checks a connection out of the database pool and opens a
    session with a fresh transaction; leaving commits (or rolls back when
    the block raised), closes the session and returns the connection, on
    every exit path. A unit of work is single-use.
    """

    def __init__(self, database: "Database") -> None:
        self.database = database
        self.session: Optional["Session"] = None
        self.correlation_id: Optional[str] = None
        self._used = False
        self.logger = get_logger("persistence.unit_of_work")

    def __enter__(self) -> "Session":
        if self._used:
            raise TransactionError("A unit of work cannot be entered twice.")
        self._used = True
        self.correlation_id = set_correlation_id()
        adapter = self.database.pool.acquire()
        try:
            session = self.database.open_session(adapter)
            session.begin()
        except Exception as exc:
            self.database.pool.release(adapter, healthy=not isinstance(exc, StorageUnavailable))
            raise
        self.session = session
        self.logger.debug("Unit of work opened")
        return session

    def __exit__(self, exc_type, exc, tb) -> bool:
        session = self.session
        if session is None:
            raise TransactionError("Unit of work was never entered.")
        healthy = True
        try:
            if exc_type is None:
                try:
                    session.commit()
                except Exception as commit_exc:
                    healthy = not isinstance(commit_exc, StorageUnavailable)
                    self.logger.warning("Unit of work rolled back: %s", commit_exc)
                    raise
                self.logger.info("Unit of work committed")
            else:
                healthy = not isinstance(exc, StorageUnavailable)
                if session.is_open:
                    session.rollback()
                self.logger.warning("Unit of work rolled back: %s", exc)
        finally:
            session.close()
            self.database.pool.release(session.adapter, healthy=healthy)
        return False

    def run(self, work: Callable[["Session"], T]) -> Outcome[T]:
        """
        Execute ``work(session)`` inside this unit of work.

        Failures from this package are captured in the returned
        :class:`Outcome`; any other exception propagates after rollback.
        """

        try:
            with self as session:
                value = work(session)
        except PersonnelError as exc:
            return Outcome.failure(exc, self.correlation_id)
        return Outcome.success(value, self.correlation_id)


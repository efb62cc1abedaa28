"""
Generic repository: one unit of work per call over any entity type.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar

from ..core.model import Entity
from ..query import Q
from ..utils import get_logger
from .database import Database
from .session import Session

E = TypeVar("E", bound=Entity)


class Repository:
    """
    CRUD and association lookups against a :class:`Database`.

    Each method runs in its own transaction and returns detached instances
    whose collections have been loaded. A missing id is reported as ``None``
    (or ``False`` for :meth:`delete`), never raised. Store failures surface
    as :class:`~personnel.errors.StorageFailure` after the transaction has
    been rolled back.
    """

    def __init__(self, database: Database) -> None:
        self.database = database
        self.logger = get_logger("persistence.repository")

    def _run(self, work: Callable[[Session], Any]) -> Any:
        return self.database.run(work).unwrap()

    # ------------------------------------------------------------------ #
    # CRUD
    # ------------------------------------------------------------------ #
    def create(self, entity: E) -> E:
        """
        Insert a transient entity together with the entities its
        associations cascade to, and the link rows of its many-to-many sets.
        """

        def work(session: Session) -> E:
            session.add(entity)
            session.flush()
            return session.initialize(entity)  # type: ignore[return-value]

        created = self._run(work)
        self.logger.info("Created %s id=%s", type(entity).__name__, created.pk)
        return created

    def get_by_id(self, model: Type[E], pk: Any) -> Optional[E]:
        def work(session: Session) -> Optional[E]:
            instance = session.get(model, pk)
            return None if instance is None else session.initialize(instance)  # type: ignore[return-value]

        return self._run(work)

    def update(self, model: Type[E], pk: Any, mutator: Callable[[E], None]) -> Optional[E]:
        """
        Load ``model`` ``pk``, apply ``mutator`` to it and save the result.

        Returns ``None`` (logged at WARNING) when the row does not exist.
        """

        def work(session: Session) -> Optional[E]:
            instance = session.get(model, pk)
            if instance is None:
                return None
            mutator(instance)  # type: ignore[arg-type]
            session.flush()
            return session.initialize(instance)  # type: ignore[return-value]

        updated = self._run(work)
        if updated is None:
            self.logger.warning("%s id=%s not found; nothing updated", model.__name__, pk)
        else:
            self.logger.info("Updated %s id=%s", model.__name__, pk)
        return updated

    def delete(self, model: Type[Entity], pk: Any) -> bool:
        """
        Delete ``model`` ``pk`` with its cascades. Deleting a missing id is a
        no-op returning ``False``.
        """

        def work(session: Session) -> bool:
            instance = session.get(model, pk)
            if instance is None:
                return False
            session.delete(instance)
            return True

        removed = self._run(work)
        if removed:
            self.logger.info("Deleted %s id=%s", model.__name__, pk)
        else:
            self.logger.warning("%s id=%s not found; nothing deleted", model.__name__, pk)
        return removed

    def list_all(
        self,
        model: Type[E],
        where: Q | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[E]:
        """
        Every row of ``model`` matching ``where``. Unordered unless
        ``order_by`` is given.
        """

        def work(session: Session) -> List[E]:
            found = session.query(model, where=where, order_by=order_by, limit=limit, offset=offset)
            return [session.initialize(instance) for instance in found]  # type: ignore[misc]

        return self._run(work)

    def find_by_association(
        self,
        model: Type[E],
        association: str,
        order_by: Sequence[str] = (),
        **lookups: Any,
    ) -> List[E]:
        """
        Entities of ``model`` with at least one associated entity matching
        ``lookups``, e.g. ``find_by_association(Employee, "contacts",
        contact_type="EMAIL")``.
        """

        def work(session: Session) -> List[E]:
            found = session.query(
                model,
                association=association,
                related_where=Q(**lookups),
                order_by=order_by,
            )
            return [session.initialize(instance) for instance in found]  # type: ignore[misc]

        return self._run(work)

    # ------------------------------------------------------------------ #
    # Raw statements
    # ------------------------------------------------------------------ #
    def raw_query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Run an engine-native SELECT and return plain row dictionaries.

        Dangerous: bypasses relationship rules and the identity map.
        """

        return self._run(lambda session: session.fetch_all(sql, params))

    def raw_update(self, sql: str, params: Sequence[Any] = ()) -> int:
        """
        Run an engine-native write statement and return the affected row count.

        Dangerous: nothing keeps association invariants intact. Meant for
        maintenance and bulk fixes, not everyday use.
        """

        def work(session: Session) -> int:
            cursor = session.execute(sql, params)
            return cursor.rowcount

        count = self._run(work)
        self.logger.warning("Raw update affected %s row(s)", count)
        return count

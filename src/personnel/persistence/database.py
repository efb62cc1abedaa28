"""
Process-wide store handle: connection settings, pool and schema helpers.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence, Type, TypeVar

from ..adapters import ConnectionConfig, DatabaseAdapter, adapter_for
from ..config import Settings
from ..core.model import Entity
from ..dialects.base import Dialect
from ..schema import SchemaBuilder
from ..utils import configure_logging, get_logger
from .pool import ConnectionPool
from .session import Session
from .unit_of_work import Outcome, UnitOfWork

T = TypeVar("T")


class Database:
    """
    Store handle created once at start-up and closed once at shutdown.

    Every public operation runs in its own :class:`UnitOfWork`, which checks
    a connection out of the pool for the duration of one transaction::

        database = Database(Settings(dsn="sqlite:///staff.db"))
        with database.unit_of_work() as session:
            session.add(employee)
        database.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        models: Optional[Sequence[Type[Entity]]] = None,
    ) -> None:
        self.settings = settings or Settings()
        configure_logging(self.settings.log_level)
        self.logger = get_logger("persistence.database")
        self.config = ConnectionConfig.from_dsn(self.settings.dsn)

        if models is None:
            from ..domain import MODELS

            models = MODELS
        self.models = tuple(models)

        pool_size = self.settings.pool_size
        if self.config.is_memory and pool_size != 1:
            self.logger.info("In-memory SQLite lives on a single connection; pool size set to 1")
            pool_size = 1
        self.pool = ConnectionPool(
            self._connect,
            pool_size,
            discard_broken=not self.config.is_memory,
        )
        self.dialect: Dialect = adapter_for(self.config).dialect
        self.logger.info("Database configured for %s", self.config.descriptive_label())

    def _connect(self) -> DatabaseAdapter:
        adapter = adapter_for(self.config, slow_query_ms=self.settings.slow_query_ms)
        adapter.connect(self.config)
        return adapter

    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open_session(self, adapter: DatabaseAdapter) -> Session:
        return Session(adapter, strict_references=self.settings.strict_references)

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self)

    def run(self, work: Callable[[Session], T]) -> Outcome[T]:
        return self.unit_of_work().run(work)

    # ------------------------------------------------------------------ #
    def create_schema(self) -> None:
        builder = SchemaBuilder(self.dialect)
        with self.unit_of_work() as session:
            for statement in builder.create_all_sql(self.models):
                session.execute(statement)
        self.logger.info("Schema created for %s", ", ".join(m.__name__ for m in self.models))

    def drop_schema(self) -> None:
        builder = SchemaBuilder(self.dialect)
        with self.unit_of_work() as session:
            for statement in builder.drop_all_sql(self.models):
                session.execute(statement)

    def close(self) -> None:
        if self.pool.closed:
            return
        self.pool.close()
        self.logger.info("Database closed")

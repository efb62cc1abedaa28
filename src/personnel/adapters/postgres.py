"""
PostgreSQL database adapter implementation.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from ..dialects.postgres import PostgresDialect
from ..errors import ConfigurationError, ConstraintViolation, StorageFailure, StorageUnavailable
from ..utils import get_logger, redact_params, time_call
from .base import ConnectionConfig


def _load_driver():
    try:
        import psycopg

        return psycopg
    except ImportError:
        return None


@dataclass
class PostgresConnectionState:
    connection: Any
    config: ConnectionConfig
    driver: Any
    in_transaction: bool = False


class PostgresAdapter:
    """
    Adapter wrapping the psycopg PostgreSQL driver.

    The driver connection stays in autocommit mode and transaction
    boundaries are issued as explicit statements.
    """

    def __init__(self, slow_query_ms: float = 100) -> None:
        self.dialect = PostgresDialect()
        self.slow_query_ms = slow_query_ms
        self._state: PostgresConnectionState | None = None
        self.logger = get_logger("adapters.postgres")

    def connect(self, config: ConnectionConfig) -> Any:
        driver = _load_driver()
        if driver is None:
            raise ConfigurationError("psycopg is required to use PostgresAdapter.")

        options = dict(config.options or {})
        if config.ssl:
            for key, value in config.ssl.postgres_options().items():
                options.setdefault(key, value)
        if config.timeout and "connect_timeout" not in options:
            options["connect_timeout"] = int(config.timeout)

        self.logger.info("Connecting to PostgreSQL %s", config.descriptive_label())

        try:
            connection = driver.connect(self._conninfo(config), **options)
        except Exception as exc:
            raise StorageUnavailable("Failed to connect to PostgreSQL.") from exc
        connection.autocommit = True
        if config.isolation_level:
            setattr(connection, "isolation_level", config.isolation_level)

        self._state = PostgresConnectionState(connection, config, driver)
        return connection

    def close(self) -> None:
        if self._state:
            try:
                self._state.connection.close()
            finally:
                self._state = None

    @property
    def in_transaction(self) -> bool:
        return bool(self._state and self._state.in_transaction)

    def _ensure_connection(self):
        if not self._state:
            raise StorageUnavailable("PostgresAdapter is not connected.")
        conn = self._state.connection
        if getattr(conn, "closed", False):
            if self._state.in_transaction:
                raise StorageUnavailable("PostgreSQL connection lost inside a transaction.")
            self.logger.warning("PostgreSQL connection closed; reconnecting.")
            conn = self.connect(self._state.config)
        return conn

    def execute(self, sql: str, params: Sequence[Any] | None = None):
        connection = self._ensure_connection()
        cursor = connection.cursor()
        params = list(params or ())
        self._validate_params(sql, params)
        with time_call(
            "postgres.execute",
            self.logger,
            sql=sql,
            params=redact_params(params),
            threshold_ms=self.slow_query_ms,
        ):
            with self._translate_errors():
                cursor.execute(sql, params)
        return cursor

    def executemany(
        self,
        sql: str,
        seq_of_params: Sequence[Sequence[Any]] | Iterable[Sequence[Any]],
    ):
        connection = self._ensure_connection()
        cursor = connection.cursor()
        seq = [list(params) for params in seq_of_params]
        for params in seq:
            self._validate_params(sql, params)
        with time_call("postgres.executemany", self.logger, sql=sql, threshold_ms=self.slow_query_ms):
            with self._translate_errors():
                cursor.executemany(sql, seq)
        return cursor

    def begin(self) -> None:
        self.execute("BEGIN")
        if self._state is None:
            raise StorageUnavailable("PostgresAdapter is not connected.")
        self._state.in_transaction = True

    def commit(self) -> None:
        if not self.in_transaction:
            return
        try:
            self.execute("COMMIT")
        finally:
            if self._state:
                self._state.in_transaction = False

    def rollback(self) -> None:
        if not self.in_transaction:
            return
        try:
            self.execute("ROLLBACK")
        finally:
            if self._state:
                self._state.in_transaction = False

    def last_insert_id(self, cursor: Any, table: str, pk_column: str) -> Any:
        row = cursor.fetchone()
        if not row:
            raise StorageFailure(f"INSERT into {table} returned no {pk_column}.")
        return row[0]

    @staticmethod
    def _conninfo(config: ConnectionConfig) -> str:
        # psycopg rejects the options we already consumed from the query string
        url = config.url.split("?", 1)[0]
        return url.replace("postgres+psycopg://", "postgresql://", 1)

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        driver = self._state.driver if self._state else None
        integrity = getattr(driver, "IntegrityError", None)
        unavailable = tuple(
            err
            for err in (getattr(driver, "OperationalError", None), getattr(driver, "InterfaceError", None))
            if err is not None
        )
        generic = getattr(driver, "Error", None)
        try:
            yield
        except Exception as exc:
            if integrity is not None and isinstance(exc, integrity):
                raise ConstraintViolation(str(exc)) from exc
            if unavailable and isinstance(exc, unavailable):
                raise StorageUnavailable(str(exc)) from exc
            if generic is not None and isinstance(exc, generic):
                raise StorageFailure(str(exc)) from exc
            raise

    @staticmethod
    def _count_placeholders(sql: str) -> int:
        count = 0
        idx = 0
        while idx < len(sql) - 1:
            if sql[idx] == "%" and sql[idx + 1] == "s":
                count += 1
                idx += 2
                continue
            if sql[idx] == "%" and sql[idx + 1] == "%":
                idx += 2
                continue
            idx += 1
        return count

    def _validate_params(self, sql: str, params: Sequence[Any]) -> None:
        placeholder_count = self._count_placeholders(sql)
        if placeholder_count != len(params):
            raise StorageFailure(
                f"Parameter count mismatch: expected {placeholder_count}, received {len(params)}."
            )

"""
SQLite database adapter implementation.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from ..dialects.sqlite import SQLiteDialect
from ..errors import ConstraintViolation, StorageFailure, StorageUnavailable
from ..utils import get_logger, redact_params, time_call
from .base import ConnectionConfig

_UNAVAILABLE_MARKERS = ("locked", "unable to open", "disk i/o", "readonly", "closed")


@dataclass(slots=True)
class SQLiteConnectionState:
    connection: sqlite3.Connection


class SQLiteAdapter:
    """
    Adapter wrapping the Python stdlib sqlite3 module.

    The connection runs in driver autocommit mode; transactions are opened
    explicitly so the transaction manager owns the boundary. They start with
    ``BEGIN IMMEDIATE``: the write lock is taken up front, so concurrent
    writers queue on the busy timeout instead of failing on a lock upgrade.
    """

    def __init__(self, slow_query_ms: float = 100) -> None:
        self.dialect = SQLiteDialect()
        self.slow_query_ms = slow_query_ms
        self._state: SQLiteConnectionState | None = None
        self.logger = get_logger("adapters.sqlite")

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self, config: ConnectionConfig) -> sqlite3.Connection:
        path = self._normalize_path(config.url)
        timeout = config.timeout if config.timeout is not None else 5.0

        with self._translate_errors():
            connection = sqlite3.connect(
                path,
                isolation_level=None,
                timeout=timeout,
                check_same_thread=False,
            )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")

        self._state = SQLiteConnectionState(connection)
        self.logger.debug("Connected to SQLite %s", path)
        return connection

    def close(self) -> None:
        if self._state:
            self._state.connection.close()
            self._state = None

    @property
    def in_transaction(self) -> bool:
        return bool(self._state and self._state.connection.in_transaction)

    def _ensure_connection(self) -> sqlite3.Connection:
        if not self._state:
            raise StorageUnavailable("SQLiteAdapter is not connected.")
        return self._state.connection

    # ------------------------------------------------------------------ #
    # Execution helpers
    # ------------------------------------------------------------------ #
    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        connection = self._ensure_connection()
        cursor = connection.cursor()
        params = list(params or ())
        with time_call(
            "sqlite.execute",
            self.logger,
            sql=sql,
            params=redact_params(params),
            threshold_ms=self.slow_query_ms,
        ):
            with self._translate_errors(sql):
                cursor.execute(sql, params)
        return cursor

    def executemany(
        self, sql: str, seq_of_params: Sequence[Sequence[Any]] | Iterable[Sequence[Any]]
    ) -> sqlite3.Cursor:
        connection = self._ensure_connection()
        cursor = connection.cursor()
        with time_call("sqlite.executemany", self.logger, sql=sql, threshold_ms=self.slow_query_ms):
            with self._translate_errors(sql):
                cursor.executemany(sql, seq_of_params)
        return cursor

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def begin(self) -> None:
        connection = self._ensure_connection()
        with self._translate_errors("BEGIN IMMEDIATE"):
            connection.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        connection = self._ensure_connection()
        if connection.in_transaction:
            with self._translate_errors("COMMIT"):
                connection.execute("COMMIT")

    def rollback(self) -> None:
        connection = self._ensure_connection()
        if connection.in_transaction:
            with self._translate_errors("ROLLBACK"):
                connection.execute("ROLLBACK")

    # ------------------------------------------------------------------ #
    def last_insert_id(self, cursor: sqlite3.Cursor, table: str, pk_column: str) -> Any:
        return cursor.lastrowid

    @staticmethod
    def _normalize_path(url: str) -> str:
        url = url.split("?", 1)[0]
        if url in ("sqlite://", "sqlite:///:memory:"):
            return ":memory:"
        prefix = "sqlite:///"
        if url.startswith(prefix):
            return url[len(prefix) :]
        return url

    @staticmethod
    @contextmanager
    def _translate_errors(sql: str | None = None) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as exc:
            raise ConstraintViolation(str(exc)) from exc
        except (sqlite3.OperationalError, sqlite3.ProgrammingError) as exc:
            message = str(exc)
            if any(marker in message.lower() for marker in _UNAVAILABLE_MARKERS):
                raise StorageUnavailable(message) from exc
            raise StorageFailure(f"{message} (sql: {sql})" if sql else message) from exc
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc

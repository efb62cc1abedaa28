"""
Adapter protocol definitions and connection configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from ..dialects.base import Dialect
from ..errors import ConfigurationError
from .dsn import DSNConfig, parse_dsn


@dataclass
class SSLConfig:
    mode: str | None = None
    rootcert: str | None = None
    cert: str | None = None
    key: str | None = None

    def postgres_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.mode:
            options["sslmode"] = self.mode
        if self.rootcert:
            options["sslrootcert"] = self.rootcert
        if self.cert:
            options["sslcert"] = self.cert
        if self.key:
            options["sslkey"] = self.key
        return options


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value for '{key}': {value!r}")


def parse_float(value: str, *, key: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid float value for '{key}': {value!r}") from exc


def parse_int(value: str, *, key: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer value for '{key}': {value!r}") from exc


def _parse_ssl(query: dict[str, str]) -> SSLConfig | None:
    ssl = SSLConfig(
        mode=query.pop("sslmode", None),
        rootcert=query.pop("sslrootcert", None),
        cert=query.pop("sslcert", None),
        key=query.pop("sslkey", None),
    )
    if any([ssl.mode, ssl.rootcert, ssl.cert, ssl.key]):
        return ssl
    return None


@dataclass
class ConnectionConfig:
    """
    Normalized connection configuration for adapters.
    """

    url: str
    autocommit: bool = False
    isolation_level: str | None = None
    timeout: float | None = None
    options: dict[str, Any] | None = None
    ssl: SSLConfig | None = None
    dsn: DSNConfig | None = None
    source: str | None = None

    @classmethod
    def from_dsn(cls, dsn: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Build a connection config by parsing the DSN string.

        Explicit keyword arguments win over values found in the query string.
        """

        parsed = parse_dsn(dsn)
        query = dict(parsed.query)

        autocommit = parse_bool(query.pop("autocommit"), key="autocommit") if "autocommit" in query else False
        timeout = parse_float(query.pop("timeout"), key="timeout") if "timeout" in query else None
        isolation_level = query.pop("isolation_level", None)
        ssl = _parse_ssl(query)

        options: dict[str, Any] = {}
        for key, value in query.items():
            options[key] = parse_int(value, key=key) if key == "connect_timeout" else value
        options.update(kwargs.pop("options", None) or {})

        return cls(
            url=dsn,
            dsn=parsed,
            autocommit=kwargs.pop("autocommit", autocommit),
            isolation_level=kwargs.pop("isolation_level", isolation_level),
            timeout=kwargs.pop("timeout", timeout),
            options=options or None,
            ssl=kwargs.pop("ssl", ssl),
            **kwargs,
        )

    @classmethod
    def from_env(cls, env_var: str, **kwargs: Any) -> "ConnectionConfig":
        value = os.getenv(env_var)
        if not value:
            raise ConfigurationError(f"Environment variable {env_var} is not set")
        return cls.from_dsn(value, source=env_var, **kwargs)

    @property
    def backend(self) -> str:
        if self.dsn is not None:
            return self.dsn.backend
        return parse_dsn(self.url).backend

    @property
    def is_memory(self) -> bool:
        return self.backend == "sqlite" and self.url.split("?", 1)[0] in (
            "sqlite://",
            "sqlite:///:memory:",
        )

    def redacted_dsn(self) -> str:
        if self.dsn:
            return self.dsn.redacted()
        return self.url

    def descriptive_label(self) -> str:
        redacted = self.redacted_dsn()
        if self.source:
            return f"{self.source} ({redacted})"
        return redacted


class DatabaseAdapter(Protocol):
    """
    Adapter interface exposing the store operations used by higher layers.

    Implementations translate driver exceptions into
    :class:`~personnel.errors.StorageFailure` subclasses.
    """

    dialect: Dialect

    def connect(self, config: ConnectionConfig) -> Any:
        """
        Establish a connection handle using the supplied configuration.
        """

    def close(self) -> None:
        """
        Close underlying resources. Implementations should be idempotent.
        """

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        """
        Execute a single SQL statement returning a cursor-like object.
        """

    def executemany(self, sql: str, seq_of_params: Sequence[Sequence[Any]]) -> Any:
        """
        Execute a prepared statement against multiple parameter sets.
        """

    def begin(self) -> None:
        """
        Start a transaction.
        """

    def commit(self) -> None:
        """
        Commit the current transaction.
        """

    def rollback(self) -> None:
        """
        Roll back the current transaction.
        """

    def last_insert_id(self, cursor: Any, table: str, pk_column: str) -> Any:
        """
        Retrieve the primary key value generated by the previous insert.
        """

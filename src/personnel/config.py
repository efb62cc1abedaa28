"""
Process-level settings for a :class:`~personnel.persistence.Database`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .adapters.base import parse_bool, parse_float, parse_int
from .adapters.dsn import parse_dsn
from .errors import ConfigurationError

DEFAULT_PREFIX = "PERSONNEL_"


@dataclass
class Settings:
    """
    Database settings.

    ``strict_references`` turns unresolved ids in relationship mutations into
    :class:`~personnel.errors.InvalidReference` failures instead of skipping
    them with a warning.
    """

    dsn: str = "sqlite:///:memory:"
    pool_size: int = 5
    slow_query_ms: float = 100.0
    strict_references: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        parse_dsn(self.dsn)
        if self.pool_size < 1:
            raise ConfigurationError(f"pool_size must be at least 1, got {self.pool_size}")
        if self.slow_query_ms < 0:
            raise ConfigurationError(f"slow_query_ms must not be negative, got {self.slow_query_ms}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"Unknown log level {self.log_level!r}")

    @classmethod
    def from_env(
        cls, prefix: str = DEFAULT_PREFIX, environ: Optional[Mapping[str, str]] = None
    ) -> "Settings":
        """
        Build settings from ``<prefix>DSN``, ``<prefix>POOL_SIZE``,
        ``<prefix>SLOW_QUERY_MS``, ``<prefix>STRICT_REFERENCES`` and
        ``<prefix>LOG_LEVEL``. Unset variables keep their defaults.
        """

        env = os.environ if environ is None else environ
        values: dict = {}

        dsn = env.get(f"{prefix}DSN")
        if dsn:
            values["dsn"] = dsn
        pool_size = env.get(f"{prefix}POOL_SIZE")
        if pool_size:
            values["pool_size"] = parse_int(pool_size, key=f"{prefix}POOL_SIZE")
        slow_query_ms = env.get(f"{prefix}SLOW_QUERY_MS")
        if slow_query_ms:
            values["slow_query_ms"] = parse_float(slow_query_ms, key=f"{prefix}SLOW_QUERY_MS")
        strict = env.get(f"{prefix}STRICT_REFERENCES")
        if strict:
            values["strict_references"] = parse_bool(strict, key=f"{prefix}STRICT_REFERENCES")
        log_level = env.get(f"{prefix}LOG_LEVEL")
        if log_level:
            values["log_level"] = log_level

        return cls(**values)

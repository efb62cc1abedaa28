"""DSN parsing and redaction utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from ..errors import ConfigurationError

SUPPORTED_DRIVERS = ("sqlite", "postgres", "postgresql")


@dataclass
class DSNConfig:
    driver: str
    username: Optional[str]
    password: Optional[str]
    host: Optional[str]
    port: Optional[int]
    database: Optional[str]
    path: str
    query: dict[str, str]

    @property
    def backend(self) -> str:
        return "postgresql" if self.driver.startswith("postgres") else self.driver

    def redacted(self) -> str:
        """
        Return the DSN with credentials redacted but structure preserved.
        """

        netloc = ""
        if self.username:
            netloc += self.username
            if self.password:
                netloc += ":***"
            netloc += "@"
        if self.host:
            netloc += self.host
        if self.port:
            netloc += f":{self.port}"

        result = f"{self.driver}://{netloc}{self.path or ''}"
        if self.query:
            result += f"?{urlencode(self.query)}"
        return result


def parse_dsn(dsn: str) -> DSNConfig:
    parsed = urlparse(dsn)
    driver = parsed.scheme.split("+", 1)[0]
    if driver not in SUPPORTED_DRIVERS:
        raise ConfigurationError(f"Unsupported DSN scheme {parsed.scheme!r}")
    try:
        port = parsed.port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid port in DSN: {exc}") from exc
    query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
    return DSNConfig(
        driver=driver,
        username=parsed.username,
        password=parsed.password,
        host=parsed.hostname,
        port=port,
        database=parsed.path.lstrip("/") or None,
        path=parsed.path or "",
        query=query,
    )

"""Process-wide configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Default configuration for a :class:`~sparqlmux.connection.Connection`.

    Every attribute can be overridden per instance, either through keyword
    arguments or through :meth:`from_mapping` / :meth:`from_yaml`.
    """

    # Remote endpoint (server root, databases are addressed below it)
    ENDPOINT = os.getenv("SPARQLMUX_ENDPOINT", "http://localhost:5820")
    USERNAME = os.getenv("SPARQLMUX_USERNAME", "admin")
    PASSWORD = os.getenv("SPARQLMUX_PASSWORD", "admin")
    TIMEOUT = float(os.getenv("SPARQLMUX_TIMEOUT", "60"))
    USE_POST = _env_bool("SPARQLMUX_USE_POST")

    # Used when a query does not name a database
    DATABASE = os.getenv("SPARQLMUX_DATABASE", "")

    # Session-wide reasoning mode
    REASONING = _env_bool("SPARQLMUX_REASONING")

    # Cache backend: "" disables caching, "memory://" or "redis://host:port/db"
    CACHE_URL = os.getenv("SPARQLMUX_CACHE_URL", "")
    CACHE_TTL = int(os.getenv("SPARQLMUX_CACHE_TTL", "60"))

    # Dispatch queue
    CONCURRENCY = int(os.getenv("SPARQLMUX_CONCURRENCY", "4"))
    RETRY_DELAY = float(os.getenv("SPARQLMUX_RETRY_DELAY", "0.5"))
    MAX_RETRY_DELAY = float(os.getenv("SPARQLMUX_MAX_RETRY_DELAY", "30"))
    MAX_RETRIES = int(os.getenv("SPARQLMUX_MAX_RETRIES", "3"))

    def __init__(self, **overrides: Any) -> None:
        for name, value in overrides.items():
            key = name.upper()
            if not hasattr(type(self), key) or not key.isupper():
                raise ValueError(f"Unknown setting: {name}")
            setattr(self, key, value)

    @classmethod
    def from_mapping(cls, mapping: dict[str, Any]) -> Settings:
        """Build settings from a mapping with case-insensitive keys."""
        return cls(**{str(k): v for k, v in mapping.items()})

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Build settings from a YAML file holding a flat mapping."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}")
        return cls.from_mapping(data)

    def as_dict(self) -> dict[str, Any]:
        return {
            key: getattr(self, key)
            for key in dir(type(self))
            if key.isupper() and not key.startswith("_")
        }


class TestSettings(Settings):
    """Configuration overrides for testing."""

    __test__ = False

    ENDPOINT = "http://stardog.test:5820"
    DATABASE = "testdb"
    CACHE_URL = "memory://"
    RETRY_DELAY = 0.0
    MAX_RETRY_DELAY = 0.0

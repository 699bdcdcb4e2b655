"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os

from sparqlmux.config import Settings, TestSettings


class BackendConfig:
    """Default configuration for the Flask backend."""

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-key-change-in-prod")
    DEBUG = os.getenv("FLASK_DEBUG", "0") == "1"

    # Connection settings for the proxied database
    SPARQLMUX_SETTINGS: type[Settings] = Settings

    # Upper bound on rows returned to a client
    SPARQL_MAX_ROWS = int(os.getenv("SPARQL_MAX_ROWS", "10000"))


class TestBackendConfig(BackendConfig):
    """Configuration overrides for testing."""

    __test__ = False

    TESTING = True
    SPARQLMUX_SETTINGS = TestSettings

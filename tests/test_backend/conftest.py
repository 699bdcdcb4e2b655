"""Fixtures for backend tests."""

from __future__ import annotations

import pytest

from sparqlmux.backend.app import create_app
from sparqlmux.backend.config import TestBackendConfig

from ..fakes import FakeTransport


@pytest.fixture()
def upstream():
    """Scripted transport behind the proxy."""
    return FakeTransport()


@pytest.fixture()
def app(make_connection, upstream):
    """Create a test Flask application."""
    application = create_app(TestBackendConfig, connection=make_connection(upstream, max_retries=2))
    yield application


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()

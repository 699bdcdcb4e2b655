"""Shared fixtures: scripted transports and wired-up stores."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from sparqlmux.cache import CacheStore, MemoryBackend
from sparqlmux.connection import Connection
from sparqlmux.dispatch import DispatchQueue

from .fakes import FakeTransport


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def cache_store(backend) -> CacheStore:
    return CacheStore(backend, ttl=60)


@pytest.fixture()
def make_queue(cache_store) -> Callable[..., DispatchQueue]:
    """Build a queue with zero backoff so retries do not sleep."""

    def _make(transport, **kwargs: Any) -> DispatchQueue:
        kwargs.setdefault("cache", cache_store)
        kwargs.setdefault("delay", 0.0)
        kwargs.setdefault("max_delay", 0.0)
        return DispatchQueue(transport, **kwargs)

    return _make


@pytest.fixture()
def make_connection(cache_store) -> Callable[..., Connection]:
    def _make(transport, **kwargs: Any) -> Connection:
        kwargs.setdefault("cache", cache_store)
        kwargs.setdefault("delay", 0.0)
        kwargs.setdefault("max_delay", 0.0)
        kwargs.setdefault("default_database", "testdb")
        return Connection(transport, **kwargs)

    return _make

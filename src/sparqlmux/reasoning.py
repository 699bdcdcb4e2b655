"""Scoped overrides of the session-wide reasoning mode.

The reasoning mode is connection state shared by every caller.  A query
may ask for a different mode just for itself; :meth:`ReasoningGuard.scoped`
applies the override, runs the wrapped call and restores the previous
mode whether the call succeeded or not.

Scoped sections are serialized against each other and against
:meth:`ReasoningGuard.resolve`, so a query that runs with the ambient
mode never picks up another query's override, and one scope's restore
can never clobber a concurrent scope's override.  The resolved mode is
passed to the transport explicitly with each task; the transport never
reads the shared flag.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class ReasoningGuard:
    """Holds the ambient reasoning mode and applies per-query overrides."""

    def __init__(self, mode: bool = False) -> None:
        self._mode = bool(mode)
        self._lock = threading.RLock()

    @property
    def mode(self) -> bool:
        """Current value of the shared flag (no locking)."""
        return self._mode

    def set(self, mode: bool) -> None:
        """Change the ambient mode, waiting for any scoped section to finish."""
        with self._lock:
            self._mode = bool(mode)

    def resolve(self, override: bool | None = None) -> bool:
        """Return the mode a query should run with."""
        if override is not None:
            return bool(override)
        with self._lock:
            return self._mode

    @contextmanager
    def scoped(self, override: bool) -> Iterator[bool]:
        """Apply *override* for the duration of the block, then restore."""
        with self._lock:
            snapshot = self._mode
            self._mode = bool(override)
            logger.debug(f"Reasoning {snapshot} -> {self._mode} for scoped query")
            try:
                yield self._mode
            finally:
                self._mode = snapshot
                logger.debug(f"Reasoning restored to {snapshot}")

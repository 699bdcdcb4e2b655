"""
Dispatch Queue - bounded-concurrency task execution with adaptive retry.

This module runs :class:`~sparqlmux.tasks.Task` objects against a transport
collaborator.  It handles:
- FIFO admission with at most ``concurrency_limit`` tasks dispatching at once
- Cache short-circuit before dispatch and write-back after success
- Retry with exponential backoff for transient failures
- Additive-increase / backoff-doubling feedback on the concurrency limit

Usage:
    from sparqlmux.dispatch import DispatchQueue

    queue = DispatchQueue(transport, cache=store, concurrency=4)
    future = queue.enqueue(task)
    result = future.result()

Completion order across concurrently dispatched tasks is not guaranteed;
only the order in which tasks *start* dispatching follows submission order.
"""

from __future__ import annotations

import collections
import dataclasses
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Protocol

from sparqlmux.cache import CacheStore
from sparqlmux.errors import DispatchFailed, QueryError, TransportError
from sparqlmux.tasks import QueryOptions, Task, TaskMethod

logger = logging.getLogger(__name__)

NQUADS = "application/n-quads"


class Transport(Protocol):
    """Query-execution collaborator used by the queue."""

    def execute(self, method: TaskMethod, options: QueryOptions) -> tuple[Any, int]: ...


@dataclass
class QueueState:
    """Scheduling state shared by every task of one queue.

    Invariant: ``1 <= concurrency_limit <= max_concurrency``.
    """

    concurrency_limit: int
    max_concurrency: int
    base_delay: float
    max_retries: int
    max_delay: float = 30.0
    delay: float = 0.0
    active_workers: int = 0


def _is_empty_object(body: Any) -> bool:
    return isinstance(body, dict) and not body


class DispatchQueue:
    """
    Run tasks with bounded concurrency, caching and adaptive retry.

    Attributes:
        transport: Object with ``execute(method, options) -> (body, status)``
        cache: Cache store consulted before and updated after dispatch
        state: Current :class:`QueueState` (read a copy via :meth:`snapshot`)

    Example:
        >>> queue = DispatchQueue(transport, concurrency=2, delay=0.1)
        >>> queue.enqueue(Task(method=TaskMethod.QUERY, options=opts)).result()
    """

    def __init__(
        self,
        transport: Transport,
        *,
        cache: CacheStore | None = None,
        concurrency: int = 4,
        delay: float = 0.5,
        max_retries: int = 3,
        max_delay: float = 30.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.transport = transport
        self.cache = cache or CacheStore()
        self.state = QueueState(
            concurrency_limit=concurrency,
            max_concurrency=concurrency,
            base_delay=delay,
            max_retries=max_retries,
            max_delay=max_delay,
            delay=delay,
        )
        self._backlog: collections.deque[tuple[Task, Future]] = collections.deque()
        self._cond = threading.Condition()
        self._worker_seq = 0

        logger.debug(f"DispatchQueue initialized (concurrency={concurrency}, retries={max_retries})")

    # -- configuration ----------------------------------------------------

    def set_concurrency(self, n: int) -> None:
        """Set both the current limit and the adaptive ceiling to *n*."""
        if n < 1:
            raise ValueError("concurrency must be at least 1")
        with self._cond:
            self.state.concurrency_limit = n
            self.state.max_concurrency = n
            self._admit()

    def set_delay(self, delay: float) -> None:
        """Set the base backoff delay (seconds) and reset the current delay."""
        if delay < 0:
            raise ValueError("delay must not be negative")
        with self._cond:
            self.state.base_delay = delay
            self.state.delay = delay

    def set_max_retries(self, n: int) -> None:
        """Bound the number of attempts per task (applies to tasks not yet started)."""
        if n < 1:
            raise ValueError("max_retries must be at least 1")
        with self._cond:
            self.state.max_retries = n

    def snapshot(self) -> QueueState:
        """Return a copy of the current queue state."""
        with self._cond:
            return dataclasses.replace(self.state)

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._backlog)

    # -- scheduling -------------------------------------------------------

    def enqueue(self, task: Task) -> Future:
        """Queue *task* and return a future that resolves with its result."""
        future: Future = Future()
        with self._cond:
            self._backlog.append((task, future))
            logger.debug(f"Enqueued {task} ({len(self._backlog)} waiting)")
            self._admit()
        return future

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is waiting or dispatching."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not self._backlog and self.state.active_workers == 0,
                timeout=timeout,
            )

    def _admit(self) -> None:
        # Caller holds self._cond
        while self._backlog and self.state.active_workers < self.state.concurrency_limit:
            task, future = self._backlog.popleft()
            self.state.active_workers += 1
            self._worker_seq += 1
            worker = threading.Thread(
                target=self._work,
                args=(task, future),
                name=f"sparqlmux-worker-{self._worker_seq}",
                daemon=True,
            )
            worker.start()

    def _work(self, task: Task, future: Future) -> None:
        try:
            result = self._process(task)
        except BaseException as e:
            if not future.cancelled():
                future.set_exception(e)
        else:
            if not future.cancelled():
                future.set_result(result)
        finally:
            with self._cond:
                self.state.active_workers -= 1
                self._admit()
                self._cond.notify_all()

    # -- execution --------------------------------------------------------

    def _process(self, task: Task) -> Any:
        cached = self.cache.fetch(task)
        if cached is not None:
            return cached

        with self._cond:
            max_retries = self.state.max_retries

        last_error: BaseException | None = None
        for attempt in range(1, max_retries + 1):
            try:
                logger.debug(f"Dispatching {task} (attempt {attempt}/{max_retries})")
                body, status = self._call_transport(task)
                if status != 200:
                    raise TransportError(f"HTTP {status}: {body}", status=status, body=body)
            except QueryError:
                # Malformed request, retrying cannot help
                raise
            except Exception as e:
                last_error = e
                delay = self._on_failure()
                logger.warning(f"{task} attempt {attempt}/{max_retries} failed: {e}")
                if attempt >= max_retries:
                    break
                logger.info(f"Retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})")
                time.sleep(delay)
                continue

            self._on_success()
            if task.wants_text and _is_empty_object(body):
                body = ""
            self.cache.put(task, body)
            return body

        logger.error(f"{task} failed after {max_retries} tries")
        if last_error is None:
            raise TransportError("Query failed unexpectedly")
        raise DispatchFailed(last_error, attempts=max_retries) from last_error

    def _call_transport(self, task: Task) -> tuple[Any, int]:
        method = task.method
        if method is TaskMethod.QUERY:
            return self.transport.execute(TaskMethod.QUERY, task.options)
        elif method is TaskMethod.QUERY_GRAPH:
            return self.transport.execute(TaskMethod.QUERY_GRAPH, task.options)
        elif method is TaskMethod.GET_GRAPH:
            options = task.options.model_copy(update={"mimetype": NQUADS})
            return self.transport.execute(TaskMethod.QUERY_GRAPH, options)
        raise ValueError(f"Unknown task method: {method!r}")

    def _on_failure(self) -> float:
        """Tighten admission and double the backoff; return the delay to wait."""
        with self._cond:
            state = self.state
            if state.concurrency_limit > 1:
                state.concurrency_limit -= 1
                logger.info(f"Concurrency limit lowered to {state.concurrency_limit}")
            if state.delay <= 0:
                state.delay = state.base_delay
            state.delay = min(state.delay * 2, state.max_delay)
            return state.delay

    def _on_success(self) -> None:
        with self._cond:
            state = self.state
            if state.concurrency_limit < state.max_concurrency:
                state.concurrency_limit += 1
                state.delay = max(state.delay / 2, state.base_delay)
                logger.info(f"Concurrency limit raised to {state.concurrency_limit}")
                self._admit()

    def __repr__(self) -> str:
        state = self.state
        return (
            f"DispatchQueue(limit={state.concurrency_limit}/{state.max_concurrency}, "
            f"active={state.active_workers}, waiting={len(self._backlog)})"
        )

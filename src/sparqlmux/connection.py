"""Query façade - the public entry point of sparqlmux.

A :class:`Connection` composes the transport, the cache store, the
dispatch queue and the reasoning guard.  Its query methods accept either
a bare query string or an options mapping, fill in the default database,
run the task through the queue and shape the result.

Usage:
    from sparqlmux import Connection

    conn = Connection.from_settings()
    conn.set_default_database("mydb")
    names = conn.get_col_values("SELECT ?name WHERE { ?s foaf:name ?name }")
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any

from rdflib import Graph

from sparqlmux import results
from sparqlmux.cache import CacheStore, open_backend
from sparqlmux.codec import JsonLd, JsonLdCodec
from sparqlmux.config import Settings
from sparqlmux.dispatch import DispatchQueue, QueueState, Transport
from sparqlmux.reasoning import ReasoningGuard
from sparqlmux.tasks import GraphForm, OptionsLike, QueryOptions, Task, TaskMethod, coerce_options
from sparqlmux.transport import HttpTransport

logger = logging.getLogger(__name__)

__all__ = ["Connection"]


class Connection:
    """
    Cached, retrying, concurrency-limited access to a graph database.

    Attributes:
        transport: Query-execution collaborator
        cache: Response cache shared by every query of this connection
        queue: Dispatch queue running the tasks
        codec: JSON-LD / RDF codec for graph operations
    """

    def __init__(
        self,
        transport: Transport,
        *,
        cache: CacheStore | None = None,
        queue: DispatchQueue | None = None,
        codec: JsonLdCodec | None = None,
        default_database: str | None = None,
        reasoning: bool = False,
        concurrency: int = 4,
        delay: float = 0.5,
        max_retries: int = 3,
        max_delay: float = 30.0,
    ) -> None:
        self.transport = transport
        self.cache = cache or CacheStore()
        self.queue = queue or DispatchQueue(
            transport,
            cache=self.cache,
            concurrency=concurrency,
            delay=delay,
            max_retries=max_retries,
            max_delay=max_delay,
        )
        self.codec = codec or JsonLdCodec()
        self.default_database = default_database or None
        self._reasoning = ReasoningGuard(reasoning)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Connection:
        """Build a connection with an HTTP transport from *settings*."""
        settings = settings or Settings()
        transport = HttpTransport(
            settings.ENDPOINT,
            auth=(settings.USERNAME, settings.PASSWORD) if settings.USERNAME else None,
            use_post=settings.USE_POST,
            timeout=settings.TIMEOUT,
        )
        cache = CacheStore(open_backend(settings.CACHE_URL), ttl=settings.CACHE_TTL)
        return cls(
            transport,
            cache=cache,
            default_database=settings.DATABASE,
            reasoning=settings.REASONING,
            concurrency=settings.CONCURRENCY,
            delay=settings.RETRY_DELAY,
            max_retries=settings.MAX_RETRIES,
            max_delay=settings.MAX_RETRY_DELAY,
        )

    # -- session state --------------------------------------------------

    def set_default_database(self, database: str | None) -> None:
        self.default_database = database or None

    def get_default_database(self) -> str | None:
        return self.default_database

    def set_reasoning(self, mode: bool) -> None:
        """Set the session-wide reasoning mode used by queries without an override."""
        self._reasoning.set(mode)

    def get_reasoning(self) -> bool:
        """Read the shared flag as is.

        While another thread runs a reasoning-scoped query this returns
        that query's override; use :meth:`resolve_reasoning` for the mode
        an unscoped query would run with.
        """
        return self._reasoning.mode

    def resolve_reasoning(self, override: bool | None = None) -> bool:
        """Return *override*, or the session mode once no scoped query holds it."""
        return self._reasoning.resolve(override)

    # -- queue configuration ----------------------------------------------

    def set_concurrency(self, n: int) -> None:
        self.queue.set_concurrency(n)

    def set_delay(self, delay: float) -> None:
        self.queue.set_delay(delay)

    def set_max_retries(self, n: int) -> None:
        self.queue.set_max_retries(n)

    @property
    def queue_state(self) -> QueueState:
        return self.queue.snapshot()

    # -- dispatch ---------------------------------------------------------

    def _prepare(self, options: OptionsLike) -> QueryOptions:
        opts = coerce_options(options)
        if opts.database is None and self.default_database:
            opts = opts.model_copy(update={"database": self.default_database})
        return opts

    def _task(self, method: TaskMethod, opts: QueryOptions, reasoning: bool) -> Task:
        return Task(method=method, options=opts.model_copy(update={"reasoning": reasoning}))

    def submit(self, method: TaskMethod, options: OptionsLike) -> Future:
        """Queue a task without waiting for it.

        The reasoning mode is resolved when the task is submitted and sent
        with it, so later changes to the session mode do not affect it.
        """
        opts = self._prepare(options)
        reasoning = self._reasoning.resolve(opts.reasoning)
        return self.queue.enqueue(self._task(method, opts, reasoning))

    def _run(self, method: TaskMethod, options: OptionsLike) -> Any:
        opts = self._prepare(options)
        if opts.reasoning is not None:
            with self._reasoning.scoped(opts.reasoning) as mode:
                return self.queue.enqueue(self._task(method, opts, mode)).result()
        reasoning = self._reasoning.resolve()
        return self.queue.enqueue(self._task(method, opts, reasoning)).result()

    def query(self, options: OptionsLike) -> Any:
        """Run a SPARQL query and return the decoded response body."""
        return self._run(TaskMethod.QUERY, options)

    def query_graph(self, options: OptionsLike) -> Any:
        """Run a CONSTRUCT / DESCRIBE query and return the raw graph payload."""
        return self._run(TaskMethod.QUERY_GRAPH, options)

    def get_graph(
        self,
        options: OptionsLike,
        form: GraphForm | str | None = None,
        context: Any = None,
    ) -> JsonLd | Graph:
        """Run a graph query and return it as JSON-LD (or an rdflib graph).

        Args:
            options: Query string or options; ``form`` and ``context`` may
                also be given there
            form: ``compact``, ``flatten``, ``expand``, ``raw`` or ``graph``.
                Defaults to ``compact`` when a context is given, else ``raw``
            context: JSON-LD context for compaction / flattening

        Raises:
            CodecError: If the payload cannot be converted
        """
        opts = coerce_options(options)
        update: dict[str, Any] = {}
        if form is not None:
            update["form"] = GraphForm(form)
        if context is not None:
            update["context"] = context
        if update:
            opts = opts.model_copy(update=update)

        nquads = self._run(TaskMethod.GET_GRAPH, opts)
        if not isinstance(nquads, str):
            nquads = ""

        chosen = opts.form or (GraphForm.COMPACT if opts.context is not None else GraphForm.RAW)
        if chosen is GraphForm.GRAPH:
            return self.codec.to_graph(nquads)

        doc = self.codec.from_rdf(nquads)
        if chosen is GraphForm.COMPACT:
            return self.codec.compact(doc, opts.context)
        elif chosen is GraphForm.FLATTEN:
            return self.codec.flatten(doc, opts.context)
        elif chosen is GraphForm.EXPAND:
            return self.codec.expand(doc)
        return doc

    def insert_graph(
        self,
        graph: JsonLd | Graph,
        graph_uri: str | None = None,
        database: str | None = None,
    ) -> Any:
        """Insert a JSON-LD document or rdflib graph with ``INSERT DATA``.

        Statements of a named graph go into a ``GRAPH <g> { ... }`` block.
        Default-graph statements are inserted bare, or into *graph_uri*
        when one is given.
        """
        blocks = []
        count = 0
        for name, triples in self.codec.triples_by_graph(graph):
            count += triples.count("\n") + 1
            target = name or graph_uri
            blocks.append(f"GRAPH <{target}> {{ {triples} }}" if target else triples)
        query = f"INSERT DATA {{ {' '.join(blocks)} }}"

        options: dict[str, Any] = {"query": query, "cache": False}
        if database:
            options["database"] = database
        logger.debug(f"Inserting {count} statements into {len(blocks)} graphs")
        return self._run(TaskMethod.QUERY, options)

    # -- shaped results ---------------------------------------------------

    def get_results(self, options: OptionsLike) -> list[dict[str, Any]]:
        """Binding rows exactly as returned by the server."""
        return results.bindings(self.query(options))

    def get_results_values(self, options: OptionsLike) -> list[dict[str, Any]]:
        """Binding rows reduced to ``{var: value}``."""
        return results.results_values(self.query(options))

    def get_results_frame(self, options: OptionsLike):
        """Binding values as a pandas DataFrame."""
        return results.to_frame(self.query(options))

    def get_col(self, options: OptionsLike) -> list[dict[str, Any] | None]:
        return results.column(self.query(options))

    def get_col_values(self, options: OptionsLike) -> list[Any]:
        return results.column_values(self.query(options))

    def get_var(self, options: OptionsLike) -> dict[str, Any] | None:
        return results.first_cell(self.query(options))

    def get_var_value(self, options: OptionsLike) -> Any:
        return results.first_value(self.query(options))

    # -- lifecycle --------------------------------------------------------

    def close(self, timeout: float | None = None) -> None:
        """Wait for queued and running tasks, then close the transport.

        Args:
            timeout: Seconds to wait for the queue to drain (None waits forever)
        """
        if not self.queue.wait_idle(timeout):
            logger.warning(f"Closing before the queue went idle ({self.queue.pending} tasks waiting)")
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection({self.transport!r}, database={self.default_database!r})"

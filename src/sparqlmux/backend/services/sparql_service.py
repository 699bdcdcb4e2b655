"""SPARQL query execution service - thin wrapper over a :class:`Connection`."""

from __future__ import annotations

import time
from typing import Any

from sparqlmux.cache import CacheStats
from sparqlmux.connection import Connection
from sparqlmux.errors import DispatchFailed
from sparqlmux.results import QueryResult, to_query_result
from sparqlmux.tasks import TaskMethod, coerce_options, is_update_query


class SparqlService:
    """Execute proxied queries and report them as :class:`QueryResult`."""

    def __init__(self, connection: Connection, stats: CacheStats | None = None) -> None:
        self.connection = connection
        self.stats = stats

    def execute(
        self,
        query: str,
        database: str | None = None,
        reasoning: bool | None = None,
        cache: bool | None = None,
        max_rows: int | None = None,
    ) -> QueryResult:
        """Run *query*; a failed dispatch is reported in ``error``.

        The reasoning mode is resolved once, before dispatch, and sent
        with the task, so the reported mode is the one the server saw.
        Updates succeed with an empty result.

        Raises:
            ValueError: If an option has the wrong type
        """
        options: dict[str, Any] = {"query": query}
        if database:
            options["database"] = database
        if reasoning is not None:
            options["reasoning"] = reasoning
        if cache is not None:
            options["cache"] = cache

        opts = coerce_options(options)
        mode = self.connection.resolve_reasoning(opts.reasoning)
        opts = opts.model_copy(update={"reasoning": mode})
        db_name = opts.database or self.connection.get_default_database() or ""

        t0 = time.monotonic()
        try:
            body = self.connection.submit(TaskMethod.QUERY, opts).result()
        except DispatchFailed as exc:
            return self._empty(query, db_name, t0, mode, error=str(exc))

        if is_update_query(query) or body == {}:
            result = self._empty(query, db_name, t0, mode)
        else:
            result = to_query_result(
                query,
                db_name,
                body,
                duration_ms=int((time.monotonic() - t0) * 1000),
                reasoning=mode,
            )
        if max_rows is not None and result.row_count > max_rows:
            result.rows = result.rows[:max_rows]
            result.row_count = max_rows
        if self.stats is not None:
            result.cache = self.stats.as_dict()
        return result

    @staticmethod
    def _empty(
        query: str, database: str, t0: float, reasoning: bool, error: str | None = None
    ) -> QueryResult:
        return QueryResult(
            query=query,
            database=database,
            variables=[],
            rows=[],
            row_count=0,
            duration_ms=int((time.monotonic() - t0) * 1000),
            reasoning=reasoning,
            error=error,
        )

"""
HTTP transport - executes one query request against a Stardog-style server.

The transport issues exactly one HTTP call per :meth:`HttpTransport.execute`
and reports ``(body, status_code)``.  Retrying, caching and concurrency are
left to :class:`~sparqlmux.dispatch.DispatchQueue`.

Databases are addressed below the server root:
    GET  {endpoint}/{database}/query?query=...&reasoning=true
    POST {endpoint}/{database}/update
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import requests

from sparqlmux.errors import QueryError, TransportError
from sparqlmux.tasks import QueryOptions, TaskMethod, is_update_query
from sparqlmux.version import VERSION

logger = logging.getLogger(__name__)


class MimeTypes:
    """Standard MIME types for SPARQL protocol."""

    # SELECT/ASK results
    JSON = "application/sparql-results+json"
    XML = "application/sparql-results+xml"

    # CONSTRUCT/DESCRIBE results (RDF formats)
    TURTLE = "text/turtle"
    NTRIPLES = "application/n-triples"
    NQUADS = "application/n-quads"
    RDFXML = "application/rdf+xml"
    JSONLD = "application/ld+json"

    # Default Accept headers per method
    QUERY_ACCEPT = f"{JSON}, {XML};q=0.9"
    GRAPH_ACCEPT = JSONLD


class HttpTransport:
    """
    Single-shot HTTP query executor.

    Attributes:
        endpoint_url: Server root URL
        use_post: If True, send read queries with POST instead of GET
        timeout: Request timeout in seconds

    Example:
        >>> transport = HttpTransport("http://localhost:5820", auth=("admin", "admin"))
        >>> body, status = transport.execute(TaskMethod.QUERY, QueryOptions(
        ...     query="SELECT * WHERE { ?s ?p ?o } LIMIT 1", database="mydb"))
    """

    # GET requests longer than this are sent as POST
    MAX_GET_LENGTH = 4000

    def __init__(
        self,
        endpoint_url: str,
        *,
        auth: tuple[str, str] | None = None,
        use_post: bool = False,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url.rstrip("/")
        self.use_post = use_post
        self.timeout = timeout

        # Session for connection pooling
        self._session = session or requests.Session()
        if auth is not None:
            self._session.auth = auth

        logger.debug(f"HttpTransport initialized for {self.endpoint_url}")

    def execute(self, method: TaskMethod, options: QueryOptions) -> tuple[Any, int]:
        """
        Execute one query request.

        Args:
            method: ``TaskMethod.QUERY`` or ``TaskMethod.QUERY_GRAPH``
            options: Query options; ``database`` is required and
                ``reasoning`` is sent explicitly when set

        Returns:
            ``(body, status_code)``.  JSON responses are decoded, an empty
            response body is reported as ``{}``, anything else is text.

        Raises:
            TransportError: If the HTTP call itself fails
            QueryError: If no database is given
        """
        if not options.database:
            raise QueryError("No database given and no default database configured")

        if method is TaskMethod.QUERY:
            accept = options.mimetype or MimeTypes.QUERY_ACCEPT
        elif method is TaskMethod.QUERY_GRAPH:
            accept = options.mimetype or MimeTypes.GRAPH_ACCEPT
        else:
            raise ValueError(f"Transport cannot execute {method!r}")

        update = is_update_query(options.query)
        url = f"{self.endpoint_url}/{quote(options.database, safe='')}/{'update' if update else 'query'}"
        params: dict[str, str] = {"query": options.query}
        if options.reasoning is not None:
            params["reasoning"] = "true" if options.reasoning else "false"

        headers = {
            "Accept": accept,
            "User-Agent": f"sparqlmux/{VERSION} (SPARQL client)",
        }

        use_post = update or self.use_post or len(options.query) > self.MAX_GET_LENGTH
        try:
            if use_post:
                logger.debug(f"POST {url}")
                response = self._session.post(
                    url, data=params, headers=headers, timeout=self.timeout,
                )
            else:
                logger.debug(f"GET {url}")
                response = self._session.get(
                    url, params=params, headers=headers, timeout=self.timeout,
                )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        return self._parse_body(response), response.status_code

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        text = response.text
        if not text.strip():
            return {}
        content_type = response.headers.get("content-type", "").lower()
        if "json" in content_type:
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Response claimed JSON but did not parse, returning text")
        return text

    def close(self) -> None:
        """Close the underlying requests session."""
        self._session.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"HttpTransport({self.endpoint_url!r}, use_post={self.use_post})"

"""Exception hierarchy for sparqlmux."""

from __future__ import annotations

from typing import Any


class SparqlMuxError(Exception):
    """Base exception for sparqlmux errors."""

    pass


class QueryError(SparqlMuxError):
    """Raised when a query request cannot be built (missing query or database)."""

    pass


class TransportError(SparqlMuxError):
    """Raised for a transient transport failure.

    Either the endpoint answered with a non-200 status, or the HTTP call
    itself failed.  Both are retried by the dispatch queue.
    """

    def __init__(self, message: str, *, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class DispatchFailed(SparqlMuxError):
    """Raised when every retry attempt for a task has failed.

    The message is the message of the last underlying error, which is also
    available as :attr:`last_error` and as ``__cause__``.
    """

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts

    @property
    def status(self) -> int | None:
        return getattr(self.last_error, "status", None)

    @property
    def body(self) -> Any:
        return getattr(self.last_error, "body", None)


class CodecError(SparqlMuxError):
    """Raised when RDF / JSON-LD conversion fails."""

    pass


class ResultShapeError(SparqlMuxError):
    """Raised when a response body is not a SPARQL JSON result document."""

    pass

"""Task and query option models.

A :class:`Task` is one unit of dispatchable work: a :class:`TaskMethod`
plus the :class:`QueryOptions` it runs with.  Tasks are immutable once
built, which lets the cache derive a stable key from them.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, field_validator

from sparqlmux.errors import QueryError

# SPARQL 1.1 Update operations, after any PREFIX / BASE declarations
_PROLOGUE = re.compile(
    r"^\s*(?:(?:PREFIX\s+[^\s:]*:\s*<[^>]*>|BASE\s+<[^>]*>)\s*)*",
    re.IGNORECASE,
)
_UPDATE_KEYWORDS = re.compile(
    r"(?:INSERT|DELETE|LOAD|CLEAR|CREATE|DROP|COPY|MOVE|ADD|WITH)\b",
    re.IGNORECASE,
)


class TaskMethod(str, Enum):
    """The kinds of work the dispatch queue knows how to run."""

    QUERY = "query"
    QUERY_GRAPH = "queryGraph"
    GET_GRAPH = "getGraph"


class GraphForm(str, Enum):
    """Output forms for :meth:`Connection.get_graph`."""

    COMPACT = "compact"
    FLATTEN = "flatten"
    EXPAND = "expand"
    RAW = "raw"
    GRAPH = "graph"


class QueryOptions(BaseModel):
    """Options for a single query call."""

    query: str
    database: str | None = None
    reasoning: bool | None = None
    cache: bool | None = None
    mimetype: str | None = None
    context: dict[str, Any] | list[Any] | str | None = None
    form: GraphForm | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Reject blank query text."""
        if not v or not v.strip():
            raise ValueError("Query text must not be empty")
        return v


OptionsLike = Union[str, Mapping[str, Any], QueryOptions]


class Task(BaseModel):
    """A method name and the options it runs with."""

    method: TaskMethod
    options: QueryOptions

    model_config = ConfigDict(frozen=True)

    def canonical_json(self) -> str:
        """Serialize the whole task deterministically (sorted keys, no spaces)."""
        return json.dumps(
            self.model_dump(mode="json"),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )

    @property
    def wants_text(self) -> bool:
        """True when a textual representation (``text/*``) was requested."""
        mimetype = self.options.mimetype or ""
        return mimetype.lower().startswith("text")

    def __str__(self) -> str:
        query = " ".join(self.options.query.split())
        if len(query) > 60:
            query = query[:57] + "..."
        return f"{self.method.value}({query!r})"


def coerce_options(options: OptionsLike) -> QueryOptions:
    """Turn a bare query string or a mapping into :class:`QueryOptions`."""
    if isinstance(options, QueryOptions):
        return options
    if isinstance(options, str):
        return QueryOptions(query=options)
    if isinstance(options, Mapping):
        if "query" not in options:
            raise QueryError("Query options must include 'query'")
        return QueryOptions(**dict(options))
    raise TypeError(f"Unsupported query options type: {type(options).__name__}")


def is_update_query(query: str) -> bool:
    """Return True if *query* is a SPARQL Update request.

    Leading PREFIX and BASE declarations are skipped before the first
    operation keyword is inspected.

    Example:
        >>> is_update_query("PREFIX ex: <http://ex.org/> INSERT DATA { ex:a ex:b ex:c }")
        True
        >>> is_update_query("SELECT * WHERE { ?s ?p ?o }")
        False
    """
    body = _PROLOGUE.sub("", query, count=1)
    return bool(_UPDATE_KEYWORDS.match(body))

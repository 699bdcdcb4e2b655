"""Shaping of SPARQL JSON result documents.

The helpers here take the decoded ``application/sparql-results+json``
body returned by a query and pull out the pieces callers usually want:
raw bindings, value-only rows, the first column or the first cell.
Pydantic models (:class:`ResultCell`, :class:`QueryResult`) give a typed
view for the HTTP backend.
"""

from __future__ import annotations

from typing import Any

import pandas as pd
from pydantic import BaseModel, Field

from sparqlmux.errors import ResultShapeError

# ── Result models ─────────────────────────────────────────────────


class ResultCell(BaseModel):
    """One cell in a SPARQL result row."""

    value: str
    type: str  # "uri" | "literal" | "bnode"
    lang: str | None = None
    datatype: str | None = None


class QueryResult(BaseModel):
    """Structured result from a SPARQL query execution."""

    query: str
    database: str
    variables: list[str]
    rows: list[dict[str, ResultCell]]
    row_count: int
    duration_ms: int
    reasoning: bool = False
    error: str | None = None
    boolean: bool | None = None
    cache: dict[str, int] = Field(default_factory=dict)


# ── Shaping helpers ───────────────────────────────────────────────


def _check(data: Any) -> dict[str, Any]:
    if isinstance(data, str):
        # The server answered with an error message instead of results
        raise ResultShapeError(data or "Empty response")
    if not isinstance(data, dict) or "results" not in data:
        raise ResultShapeError(f"Not a SPARQL JSON result: {str(data)[:200]}")
    return data


def variables(data: Any) -> list[str]:
    return list(_check(data).get("head", {}).get("vars", []))


def bindings(data: Any) -> list[dict[str, Any]]:
    """Return the raw binding rows of a result document."""
    return list(_check(data)["results"].get("bindings", []))


def first_var(data: Any) -> str | None:
    names = variables(data)
    return names[0] if names else None


def values_only(binding: dict[str, Any]) -> dict[str, Any]:
    """Strip ``type``, ``datatype`` and ``xml:lang`` from a binding row."""
    return {var: cell.get("value") for var, cell in binding.items()}


def results_values(data: Any) -> list[dict[str, Any]]:
    return [values_only(b) for b in bindings(data)]


def column(data: Any) -> list[dict[str, Any] | None]:
    """Raw cells of the first projected variable, one per row."""
    var = first_var(data)
    return [b.get(var) if var else None for b in bindings(data)]


def column_values(data: Any) -> list[Any]:
    return [cell.get("value") if cell else None for cell in column(data)]


def first_cell(data: Any) -> dict[str, Any] | None:
    """Raw cell at the first row / first variable, or None when empty."""
    col = column(data)
    return col[0] if col else None


def first_value(data: Any) -> Any:
    cell = first_cell(data)
    return cell.get("value") if cell else None


def to_frame(data: Any) -> pd.DataFrame:
    """Tabulate value-only rows, one column per projected variable."""
    return pd.DataFrame(results_values(data), columns=variables(data))


def to_query_result(
    query: str,
    database: str,
    data: Any,
    *,
    duration_ms: int = 0,
    reasoning: bool = False,
) -> QueryResult:
    """Build a :class:`QueryResult` from a decoded SPARQL JSON body."""
    if isinstance(data, dict) and "boolean" in data:
        return QueryResult(
            query=query,
            database=database,
            variables=[],
            rows=[],
            row_count=0,
            duration_ms=duration_ms,
            reasoning=reasoning,
            boolean=bool(data["boolean"]),
        )

    names = variables(data)
    rows: list[dict[str, ResultCell]] = []
    for binding in bindings(data):
        row: dict[str, ResultCell] = {}
        for var in names:
            cell_data = binding.get(var)
            if cell_data:
                cell_type = cell_data.get("type", "literal")
                if cell_type not in ("uri", "bnode"):
                    cell_type = "literal"
                row[var] = ResultCell(
                    value=cell_data["value"],
                    type=cell_type,
                    lang=cell_data.get("xml:lang"),
                    datatype=cell_data.get("datatype"),
                )
        rows.append(row)

    return QueryResult(
        query=query,
        database=database,
        variables=names,
        rows=rows,
        row_count=len(rows),
        duration_ms=duration_ms,
        reasoning=reasoning,
    )

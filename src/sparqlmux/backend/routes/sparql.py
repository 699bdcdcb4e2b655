"""SPARQL proxy routes - /api/sparql/*."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request

from sparqlmux.backend.services.sparql_service import SparqlService
from sparqlmux.errors import QueryError, ResultShapeError

sparql_bp = Blueprint("sparql", __name__)


@sparql_bp.route("/query", methods=["POST"])
def proxy_query():
    """Run a query through the shared connection.

    Invalid options are reported as 400, upstream failures after all
    retries as 502.
    """
    data = request.get_json(force=True, silent=True) or {}
    query = data.get("query", "")
    if not query:
        return jsonify({"error": "Missing 'query'"}), 400

    svc = SparqlService(
        current_app.config["CONNECTION"],
        stats=current_app.config["CACHE_STATS"],
    )
    try:
        result = svc.execute(
            query=query,
            database=data.get("database"),
            reasoning=data.get("reasoning"),
            cache=data.get("cache"),
            max_rows=current_app.config.get("SPARQL_MAX_ROWS"),
        )
    except (QueryError, ResultShapeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    if result.error is not None:
        abort(502, description=result.error)

    return jsonify(result.model_dump())

"""Flask application factory for the sparqlmux proxy API."""

from __future__ import annotations

import logging

from flask import Flask, jsonify

from sparqlmux.backend.config import BackendConfig
from sparqlmux.cache import CacheStats
from sparqlmux.connection import Connection
from sparqlmux.version import VERSION

logger = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    """Register consistent JSON error handlers."""

    @app.errorhandler(400)
    def bad_request(exc):
        return jsonify({"error": str(exc.description)}), 400

    @app.errorhandler(404)
    def not_found(exc):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(502)
    def bad_gateway(exc):
        return jsonify({
            "error": "Upstream SPARQL endpoint error",
            "details": str(exc.description),
        }), 502

    @app.errorhandler(Exception)
    def unhandled(exc):
        app.logger.exception("Unhandled exception")
        return jsonify({"error": "Internal server error"}), 500


def create_app(
    config_class: type[BackendConfig] = BackendConfig,
    connection: Connection | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    config_class:
        Configuration class (default :class:`BackendConfig`).
    connection:
        Connection to proxy; built from ``config_class.SPARQLMUX_SETTINGS``
        when omitted.

    Returns
    -------
    Flask
        Configured Flask application.
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    # ── Connection ────────────────────────────────────────────────────
    if connection is None:
        connection = Connection.from_settings(config_class.SPARQLMUX_SETTINGS())
    stats = CacheStats()
    connection.cache.subscribe(stats)
    app.config["CONNECTION"] = connection
    app.config["CACHE_STATS"] = stats

    # ── Blueprints ────────────────────────────────────────────────────
    from sparqlmux.backend.routes.sparql import sparql_bp

    app.register_blueprint(sparql_bp, url_prefix="/api/sparql")

    # ── Error handlers ────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Health check / stats ──────────────────────────────────────────
    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", "version": VERSION})

    @app.route("/api/cache/stats")
    def cache_stats():
        state = connection.queue_state
        return jsonify({
            "cache": stats.as_dict(),
            "cache_enabled": connection.cache.enabled,
            "queue": {
                "concurrency_limit": state.concurrency_limit,
                "max_concurrency": state.max_concurrency,
                "active_workers": state.active_workers,
                "delay": state.delay,
            },
        })

    logger.info("sparqlmux backend ready for %s", connection)
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)

"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from flask import Flask, jsonify

from transmem.exceptions import ConfigurationError, TransMemError
from transmem.logger import get_logger

from .routes.status import status_bp
from .routes.jobs import jobs_bp
from .routes.tm import tm_bp

logger = get_logger(__name__)


def build_app(engine) -> Flask:
    """Create and configure the Flask application around ``engine``."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.json.ensure_ascii = False
    app.config["ENGINE"] = engine

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(status_bp, url_prefix="/api/status")
    app.register_blueprint(jobs_bp, url_prefix="/api/jobs")
    app.register_blueprint(tm_bp, url_prefix="/api/tm")


def register_default_routes(app: Flask) -> None:
    """Register health route and error handlers."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok"})

    @app.errorhandler(ConfigurationError)
    def configuration_error(e):
        return jsonify({"error": str(e), "code": e.code, "details": e.details}), 400

    @app.errorhandler(TransMemError)
    def engine_error(e):
        logger.warning(f"Request failed: {e}")
        return jsonify({"error": str(e), "code": e.code, "details": e.details}), 409

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error"}), 500

"""
Content Control Tower
Flask Application Factory.

Usage:
    from control_tower import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from control_tower.config import config
from control_tower.core.exceptions import CapacityError, NotFoundError, ValidationError
from control_tower.middleware.logging_config import configure_logging
from control_tower.middleware.timing import init_request_timing
from control_tower.services.cache_service import get_cache_store
from control_tower.utils.errors import E, api_error

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; report routes opt in
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    limiter.init_app(app)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Cache store (shared by every blueprint via app.extensions) ───────
    app.extensions["cache_store"] = get_cache_store(app.config.get("REDIS_URL"))

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from control_tower.blueprints.health_bp import health_bp
    from control_tower.blueprints.portfolio_bp import portfolio_bp
    from control_tower.blueprints.strategy_bp import strategy_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(strategy_bp)
    app.register_blueprint(portfolio_bp)

    limiter.exempt(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(NotFoundError)
    def handle_not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def handle_validation(error):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @app.errorhandler(CapacityError)
    def handle_capacity(error):
        return api_error(E.CAPACITY_ACTIVE_LIMIT, str(error), details={"limit": error.limit})

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests", "retry_after": e.description}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    logger.info("Control Tower app created: env=%s cache=%s",
                config_name, app.extensions["cache_store"].backend)
    return app

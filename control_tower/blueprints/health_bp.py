"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — cache backend status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from control_tower.blueprints import get_store
from control_tower.services.cache_service import health_check

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with cache store status."""
    t0 = time.perf_counter()
    cache = health_check(get_store())
    cache["latency_ms"] = round((time.perf_counter() - t0) * 1000, 1)
    overall = cache["status"] == "ok"
    if not overall:
        logger.error("Health check — cache store failed: %s", cache.get("detail"))

    checks = {
        "cache": cache,
        "app": {
            "name": "Content Control Tower",
            "debug": current_app.debug,
            "testing": current_app.testing,
        },
    }
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), 200 if overall else 503

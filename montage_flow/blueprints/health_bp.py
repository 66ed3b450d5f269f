"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — simple status
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database round trip
"""

import logging
import time

from flask import Blueprint, jsonify

from montage_flow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "Montage Workflow Service"})


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness check. Always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with database status."""
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
        overall = True
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), 200 if overall else 503

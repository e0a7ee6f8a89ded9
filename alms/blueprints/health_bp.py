"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/live   — simple 200 while the process is up
    GET /api/v1/health/ready  — database and action-coordinator backend
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from alms.models import db
from alms.services.action_coordinator import get_coordinator

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check — always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness with dependency status; 503 when a dependency is down."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Action coordinator backend ───────────────────────────────────
    backend = current_app.config.get("ACTION_COORDINATOR_BACKEND", "memory")
    try:
        t0 = time.perf_counter()
        get_coordinator().ping()
        checks["coordinator"] = {
            "status": "ok",
            "backend": backend,
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
    except Exception as exc:
        checks["coordinator"] = {"status": "error", "backend": backend, "detail": str(exc)}
        overall = False
        logger.error("Health check — coordinator backend failed: %s", exc)

    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), 200 if overall else 503

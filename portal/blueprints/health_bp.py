"""
Company Portal
Health probes.

    GET /api/v1/health/ready   process is up (no dependency calls)
    GET /api/v1/health/live    database, read-model cache and workflow engine state
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from portal.models import db
from portal.models.workflow import SequenceCounter, WorkflowDefinition
from portal.services import cache_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _probe_database():
    started = time.perf_counter()
    db.session.execute(db.text("SELECT 1"))
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _probe_engine():
    counter_key = current_app.config["WORKFLOW_COUNTER_KEY"]
    counter = db.session.get(SequenceCounter, counter_key)
    active = db.session.query(WorkflowDefinition).filter_by(is_active=True).count()
    return {
        "counter_key": counter_key,
        "last_request_number": counter.current_number if counter else 0,
        "active_definitions": active,
    }


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Dependency check; 503 only when the database is unreachable."""
    checks = {}
    try:
        checks["database"] = _probe_database()
        checks["workflow"] = _probe_engine()
    except Exception as exc:
        db.session.rollback()
        logger.error("Health probe: database unavailable: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}

    # A cache outage only slows list reads down
    checks["cache"] = cache_service.health_check()

    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503

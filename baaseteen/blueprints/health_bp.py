"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready   process is up (load balancer probe)
    GET /api/v1/health/live    database, workflow master data and Redis
"""

import logging
import time

import redis as redis_lib
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from baaseteen.models import db
from baaseteen.models.case import WorkflowStage

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _timed(fn):
    started = time.perf_counter()
    detail = fn()
    return detail, round((time.perf_counter() - started) * 1000, 1)


def _check_database():
    try:
        _, ms = _timed(lambda: db.session.execute(db.text("SELECT 1")))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}, False
    return {"status": "ok", "latency_ms": ms}, True


def _check_workflow_stages():
    """Stage resolution silently degrades without active stages."""
    try:
        count = WorkflowStage.query.filter(WorkflowStage.is_active.is_(True)).count()
    except SQLAlchemyError as exc:
        db.session.rollback()
        return {"status": "error", "detail": str(exc)}
    if count == 0:
        return {"status": "warning", "detail": "no active workflow stages; run seed-workflow-defaults"}
    return {"status": "ok", "active_stages": count}


def _check_redis():
    url = current_app.config.get("REDIS_URL", "")
    if not url.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "detail": "rate limiter uses in-memory storage"}
    try:
        _, ms = _timed(lambda: redis_lib.from_url(url, socket_timeout=2).ping())
    except redis_lib.RedisError as exc:
        logger.warning("Health check: redis unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": ms}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Dependency status; 503 only when the database is down."""
    database, db_ok = _check_database()
    checks = {
        "database": database,
        "workflow_stages": _check_workflow_stages() if db_ok else {"status": "skipped"},
        "redis": _check_redis(),
    }
    return jsonify({
        "status": "healthy" if db_ok else "degraded",
        "checks": checks,
    }), 200 if db_ok else 503

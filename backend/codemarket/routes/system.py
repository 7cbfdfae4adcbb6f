# Overview: Flask API routes for health checks.

"""
System health endpoint.

Probes the tables the storefront cannot work without and reports latency,
so a load balancer can pull an instance whose database is gone.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import CatalogItem, Order, RecoveryItem, SessionToken
from codemarket.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "games": db.session.query(CatalogItem).count(),
            "recovery_games": db.session.query(RecoveryItem).count(),
            "orders": db.session.query(Order).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        now = utcnow()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at >= now,
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"active_sessions": active_sessions},
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error",
        }


def check_payment_gateway_config() -> dict:
    """Configuration only; the provider itself is not called."""
    if current_app.config.get("PAYSTACK_SECRET_KEY"):
        return {"status": "healthy"}
    return {"status": "degraded", "warning": "PAYSTACK_SECRET_KEY not set"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still able to serve the catalog)
    - 503: a database check failed
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "session_service": check_session_service_health(),
        "payment_gateway": check_payment_gateway_config(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }
    return response, http_status

# backend/branchpos/routes/system.py
"""
System health endpoint.

Checks database connectivity and the configured card terminal so a till
can tell "server down" from "terminal misconfigured".
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Branch, SessionToken, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.perf_counter()
    try:
        branch_count = db.session.query(Branch).count()
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at > utcnow(),
        ).count()

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_payment_gateway() -> dict:
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        return {"status": "degraded", "warning": "No payment gateway configured"}
    return {"status": "healthy", "details": {"gateway": gateway.name}}


@system_bp.get("/health")
def health():
    """
    200 when healthy or degraded, 503 when the database is unreachable.
    """
    start_time = time.perf_counter()

    database_health = check_database_health()
    gateway_health = check_payment_gateway()

    all_checks = [database_health, gateway_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "payment_gateway": gateway_health,
        }
    }
    return response, http_status

# backend/loyalty/routes/system.py
"""
System health endpoint.

Reports database connectivity plus point-ledger backlog figures useful
when checking that the expiration cron is actually running.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Customer, PointHistory, Role
from ..services.auth_service import ADMIN_ROLE
from loyalty.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def _timed_check(name: str, check) -> dict:
    """
    Run one check and attach its latency.

    `check` returns (status, payload) where payload holds "details" or
    "warning". Exceptions become an "unhealthy" result.
    """
    start_time = time.time()
    try:
        status, payload = check()
        result = {"status": status, **payload}
    except Exception:
        current_app.logger.exception("%s health check failed", name)
        result = {"status": "unhealthy", "error": f"{name} error"}
    result["latency_ms"] = round((time.time() - start_time) * 1000, 2)
    return result


def _database_check():
    # Earned lots past expiry that no run has reversed yet
    overdue_lots = db.session.query(PointHistory).filter(
        PointHistory.type == "earned",
        PointHistory.is_expired == False,  # noqa: E712
        PointHistory.expires_at <= utcnow(),
    ).count()

    return "healthy", {
        "details": {
            "customers": db.session.query(Customer).count(),
            "point_history_rows": db.session.query(PointHistory).count(),
            "overdue_point_lots": overdue_lots,
        }
    }


def _auth_check():
    if db.session.query(Role).filter_by(name=ADMIN_ROLE).first() is None:
        return "degraded", {"warning": "Missing roles: admin"}

    return "healthy", {
        "details": {
            "roles_configured": True,
            "cron_secret_configured": bool(current_app.config.get("CRON_SECRET")),
        }
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy, or degraded but operational
    - 503: a check is unhealthy
    """
    start_time = time.time()

    checks = {
        "database": _timed_check("Database", _database_check),
        "auth_service": _timed_check("Auth service", _auth_check),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status

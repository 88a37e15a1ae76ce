# backend/stationops/routes/system.py
"""
System health endpoint.

Reports database reachability plus the variance and anomaly tiers the
process is running with, for deployment debugging.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Station, Shift, DailyAnomaly

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "stations": db.session.query(Station).count(),
            "open_shifts": db.session.query(Shift).filter_by(status="OPEN").count(),
            "pending_daily_anomalies": db.session.query(DailyAnomaly).filter(
                DailyAnomaly.reviewed_at.is_(None)
            ).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    config = current_app.config
    body = {
        "status": database["status"],
        "database": database,
        "thresholds": {
            "variance_yellow": str(config.get("VARIANCE_YELLOW_THRESHOLD")),
            "variance_red": str(config.get("VARIANCE_RED_THRESHOLD")),
            "daily_anomaly_warning_liters": str(config.get("DAILY_ANOMALY_WARNING_LITERS")),
            "daily_anomaly_critical_liters": str(config.get("DAILY_ANOMALY_CRITICAL_LITERS")),
        },
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503

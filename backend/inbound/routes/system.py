# backend/inbound/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports which event publisher is wired in.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import PurchaseOrder, TagRegistration
from inbound.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        po_count = db.session.query(PurchaseOrder).count()
        tag_count = db.session.query(TagRegistration).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "purchase_orders": po_count,
                "registered_tags": tag_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    publisher = current_app.extensions.get("event_publisher")
    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
        },
        "event_publisher": type(publisher).__name__ if publisher else None,
    }
    return response, http_status

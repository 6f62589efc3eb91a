# backend/watchcraft/routes/system.py
"""
System health endpoint.

Reports database connectivity and row counts for the core tables.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Customer, InventoryItem, Sale, Service
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        counts = {
            "inventory_items": db.session.query(InventoryItem).count(),
            "customers": db.session.query(Customer).count(),
            "sales": db.session.query(Sale).count(),
            "services": db.session.query(Service).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(body), 200 if healthy else 503

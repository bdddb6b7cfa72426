# backend/kasir/routes/system.py
"""
System health endpoint.

Reports database reachability and row counts for the three ledger tables so
a deployment check can tell "storage down" apart from business errors.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import ShiftSession, StockMovement, StockRecord
from kasir.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "stock_records": db.session.query(StockRecord).count(),
            "stock_movements": db.session.query(StockMovement).count(),
            "shift_sessions": db.session.query(ShiftSession).count(),
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
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }), 200 if healthy else 503

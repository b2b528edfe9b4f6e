# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database reachability and the slip upload directory for
deployment debugging.
"""

import os
import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial query.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "dialect": db.engine.dialect.name,
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


def check_upload_dir_health() -> dict:
    upload_dir = current_app.config["SLIP_UPLOAD_DIR"]
    exists = os.path.isdir(upload_dir)
    return {
        "status": "healthy" if exists and os.access(upload_dir, os.W_OK) else "degraded",
        "exists": exists,
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    uploads = check_upload_dir_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "ok": healthy,
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "uploads": uploads,
        },
    }), 200 if healthy else 503

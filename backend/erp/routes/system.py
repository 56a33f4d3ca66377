# backend/erp/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }
    except SQLAlchemyError as e:
        current_app.logger.error("Database health check failed: %s", e)
        db.session.rollback()
        return {"status": "unhealthy", "error": str(e)}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "database": database,
        "production_consumes_materials": bool(current_app.config.get("PRODUCTION_CONSUME_MATERIALS")),
        "timestamp": to_utc_z(utcnow()),
    }
    return body, 200 if healthy else 503

# Overview: Flask API routes for system operations; health, version and uploaded file serving.

"""
System health and version endpoints.

Provides a database health check and version information for deployment
debugging. Uploaded images are served from the configured upload folder.
"""

import sys
import time
from flask import Blueprint, current_app, send_from_directory
from ..extensions import db
from ..models import User, Cage, Appointment, EmailOutbox
from ..models.notifications import OUTBOX_FAILED, OUTBOX_PENDING
from pawpal.time_utils import utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        cage_count = db.session.query(Cage).count()
        appointment_count = db.session.query(Appointment).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "cages": cage_count,
                "appointments": appointment_count,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_email_outbox_health() -> dict:
    """
    Report queued and failed outbound mail.

    Failed rows make the check degraded, not unhealthy: requests keep working
    and `flask email flush` retries them.
    """
    start_time = time.time()
    try:
        pending = db.session.query(EmailOutbox).filter_by(status=OUTBOX_PENDING).count()
        failed = db.session.query(EmailOutbox).filter_by(status=OUTBOX_FAILED).count()
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if failed else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending": pending,
                "failed": failed,
                "smtp_configured": bool(current_app.config.get("SMTP_HOST")),
            }
        }
        if failed:
            result["warning"] = f"{failed} email(s) failed to send"
        return result
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Email outbox health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Email outbox error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    outbox_health = check_email_outbox_health()

    all_checks = [database_health, outbox_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "email_outbox": outbox_health,
        }
    }, http_status


@system_bp.get("/version")
def version():
    """
    Version endpoint for deployment debugging.

    Does NOT expose secret keys, database credentials or internal paths.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }


@system_bp.get("/uploads/<path:filename>")
def uploaded_file(filename: str):
    """Serve receipts, boarding documents and product photos."""
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)

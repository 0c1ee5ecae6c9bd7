# backend/salonerp/routes/system.py
"""
System status, database check and location maintenance endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Location, StaffMember, Client, Service, Product, Appointment, Transaction
from ..decorators import with_request_context, api_errors, json_body
from ..services import maintenance_service
from salonerp.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and count the core tables.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "locations": db.session.query(Location).count(),
            "staff": db.session.query(StaffMember).count(),
            "clients": db.session.query(Client).count(),
            "services": db.session.query(Service).count(),
            "products": db.session.query(Product).count(),
            "appointments": db.session.query(Appointment).count(),
            "transactions": db.session.query(Transaction).count(),
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


@system_bp.get("/status")
def status():
    return {
        "status": "ok",
        "version": current_app.config.get("APP_VERSION"),
        "timestamp": to_utc_z(utcnow()),
    }, 200


@system_bp.get("/test-db")
def test_db():
    """
    Database connectivity check.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database = check_database_health()
    http_status = 200 if database["status"] == "healthy" else 503
    return {"timestamp": to_utc_z(utcnow()), "database": database}, http_status


@system_bp.post("/reset-locations")
def reset_locations():
    """Retired: locations are managed through /api/locations."""
    return jsonify({
        "error": "This endpoint has been retired. Manage locations through /api/locations.",
    }), 410


@system_bp.post("/delete-duplicates")
@with_request_context
@api_errors
def delete_duplicates(ctx):
    """
    Merge active locations that share a name.

    Request body: {"dry_run": bool} (optional)
    """
    if ctx.is_restricted:
        return jsonify({"error": "Location maintenance requires access to all locations"}), 403

    data = json_body()
    dry_run = data.get("dry_run", False)
    if not isinstance(dry_run, bool):
        return jsonify({"error": "dry_run must be a boolean"}), 400

    result = maintenance_service.dedupe_locations(dry_run=dry_run)
    if not dry_run and result["removed_count"]:
        current_app.logger.info(
            "Merged %s duplicate locations (actor=%s)",
            result["removed_count"],
            ctx.actor_name,
        )
    return jsonify(result), 200

# backend/orderdesk/routes/system.py
"""
System endpoints.

- GET /health   database round trip
- GET /ledger   activity events for one entity, oldest first
"""

import time
from flask import Blueprint, current_app, request
from sqlalchemy import text

from ..decorators import api_errors
from ..extensions import db
from ..services import ledger_service
from ..validation import field_error, parse_int_arg
from orderdesk.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/v1")


def check_database_health() -> dict:
    """Check database connectivity with a trivial round trip."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
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
        "checked_at": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return body, 200 if healthy else 503


LEDGER_ENTITY_TYPES = {"order", "inventory_item", "payment", "invoice"}


@system_bp.get("/ledger")
@api_errors("Failed to list ledger events")
def list_ledger_events():
    entity_type = (request.args.get("entity_type") or "").strip()
    if entity_type not in LEDGER_ENTITY_TYPES:
        raise field_error("entity_type", f"not one of {', '.join(sorted(LEDGER_ENTITY_TYPES))}")
    entity_id = parse_int_arg("entity_id", request.args.get("entity_id"), required=True, minimum=1)

    events = ledger_service.list_ledger_events(entity_type=entity_type, entity_id=entity_id)
    return {"events": [event.to_dict() for event in events], "total": len(events)}

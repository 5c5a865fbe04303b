# Overview: Health endpoint reporting database connectivity and seed state.

import time

from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Permission, Role

system_bp = Blueprint("system", __name__)


@system_bp.get("/health")
def health():
    """
    Database connectivity plus whether permissions and roles are seeded.

    503 when the database cannot be queried.
    """
    start_time = time.time()
    try:
        permission_count = db.session.query(Permission).count()
        role_count = db.session.query(Role).count()
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return jsonify({"status": "unhealthy", "error": "Database error"}), 503

    elapsed_ms = (time.time() - start_time) * 1000
    status = "healthy" if permission_count and role_count else "degraded"
    return jsonify({
        "status": status,
        "latency_ms": round(elapsed_ms, 2),
        "details": {"permissions": permission_count, "roles": role_count},
    })

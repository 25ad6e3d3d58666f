"""
Liveness and readiness endpoint.
"""

from flask import Blueprint, jsonify

from matterdesk import get_services

health_bp = Blueprint("health", __name__)


@health_bp.route("/health")
def health():
    """Report database connectivity and connection pool statistics"""
    services = get_services()
    if services.db is None:
        return jsonify({"status": "ok", "database": "not_configured"})

    healthy = services.db.test_connection()
    body = {
        "status": "ok" if healthy else "degraded",
        "database": "connected" if healthy else "unavailable",
        "pool": services.db.get_connection_stats(),
    }
    return jsonify(body), 200 if healthy else 503

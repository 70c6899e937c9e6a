import secrets

from flask import Blueprint, current_app, jsonify, request

from utils.retention import purge_stale_records

internal_bp = Blueprint("internal", __name__, url_prefix="/internal")


@internal_bp.post("/retention")
def run_retention():
    """Unattended trigger for the retention job, authenticated by a shared secret."""
    expected = current_app.config.get("RETENTION_SECRET")
    provided = request.headers.get("X-Cron-Secret") or ""
    if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
        current_app.logger.warning("Retention trigger rejected from %s", request.remote_addr)
        return jsonify(error="Unauthorized"), 401

    return jsonify(purge_stale_records()), 200

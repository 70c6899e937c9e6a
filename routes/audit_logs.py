from flask import Blueprint, jsonify, request
from security.rbac import require_roles
from utils.audit import list_audit_logs

audit_bp = Blueprint("audit", __name__, url_prefix="/admin")


@audit_bp.get("/audit-logs")
@require_roles("ADMIN")
def admin_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    action = (request.args.get("action") or "").strip().upper() or None
    actor_id = request.args.get("actor_id", type=int)

    rows = list_audit_logs(action=action, actor_id=actor_id, limit=limit)
    return jsonify([r.to_dict() for r in rows]), 200

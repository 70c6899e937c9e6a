from datetime import datetime, time

from flask import Blueprint, jsonify, g, request

from models.db import utcnow
from security.bruteforce import active_lockouts, admin_unlock
from security.errors import ValidationError
from security.ledger import attempts_since, recent_attempts
from security.rate_limit import reset_count, set_count, usage, usage_today
from security.rbac import require_roles
from security.session import revoke

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.post("/accounts/unlock")
@require_roles("ADMIN")
def unlock_account():
    data = request.get_json(silent=True) or {}
    cleared = admin_unlock(g.user, data.get("email"))
    return jsonify(unlocked=True, had_lockout=cleared), 200


@admin_bp.get("/lockouts")
@require_roles("ADMIN")
def list_lockouts():
    rows = active_lockouts()
    return jsonify([
        {
            "email": r.email,
            "failed_attempts": r.failed_attempts,
            "locked_until": r.locked_until.isoformat() if r.locked_until else None,
            "last_failed_at": r.last_failed_at.isoformat() if r.last_failed_at else None,
        }
        for r in rows
    ]), 200


@admin_bp.get("/rate-limits")
@require_roles("ADMIN")
def list_rate_limits():
    return jsonify(usage_today()), 200


@admin_bp.post("/rate-limits/<int:account_id>/reset")
@require_roles("ADMIN")
def reset_rate_limit(account_id):
    reset_count(g.user, account_id)
    count, reset_date = usage(account_id)
    return jsonify(account_id=account_id, request_count=count, reset_date=reset_date.isoformat()), 200


@admin_bp.put("/rate-limits/<int:account_id>")
@require_roles("ADMIN")
def update_rate_limit(account_id):
    data = request.get_json(silent=True) or {}
    if "count" not in data:
        raise ValidationError("count is required")

    set_count(g.user, account_id, data.get("count"))
    count, reset_date = usage(account_id)
    return jsonify(account_id=account_id, request_count=count, reset_date=reset_date.isoformat()), 200


@admin_bp.delete("/sessions/<int:session_id>")
@require_roles("ADMIN")
def revoke_any_session(session_id):
    return jsonify(revoke(g.user, session_id)), 200


@admin_bp.get("/security-stats")
@require_roles("ADMIN")
def security_stats():
    now = utcnow()
    start_of_day = datetime.combine(now.date(), time.min)
    quota_rows = usage_today(now)

    return jsonify(
        failed_logins_today=attempts_since(start_of_day, success=False),
        successful_logins_today=attempts_since(start_of_day, success=True),
        locked_accounts=len(active_lockouts(now)),
        ai_assist_requests_today=sum(r["request_count"] for r in quota_rows),
        ai_assist_active_accounts=len(quota_rows),
        recent_logins=[
            {
                "email": a.email,
                "success": a.success,
                "ip_address": a.ip_address,
                "location": a.location_label,
                "created_at": a.created_at.isoformat(),
            }
            for a in recent_attempts(limit=20)
        ],
    ), 200

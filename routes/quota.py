from flask import Blueprint, current_app, jsonify, g

from security.rate_limit import check_and_consume, remaining, usage
from utils.auth_context import login_required

quota_bp = Blueprint("quota", __name__, url_prefix="/ai-assist/quota")


def _quota_body(account_id):
    count, reset_date = usage(account_id)
    return {
        "daily_limit": current_app.config.get("AI_ASSIST_DAILY_LIMIT", 10),
        "used": count,
        "remaining": remaining(account_id),
        "reset_date": reset_date.isoformat(),
    }


@quota_bp.get("")
@login_required
def my_quota():
    return jsonify(_quota_body(g.user.id)), 200


@quota_bp.post("/consume")
@login_required
def consume():
    if not check_and_consume(g.user.id):
        return jsonify(
            error="Daily AI assist limit reached. Try again tomorrow.",
            remaining=0,
        ), 429
    return jsonify(_quota_body(g.user.id)), 200

from flask import Blueprint, jsonify, g

from security.identity import get_identity_provider
from security.session import list_sessions, revoke, revoke_all_except
from utils.auth_context import login_required

sessions_bp = Blueprint("sessions", __name__, url_prefix="/sessions")


@sessions_bp.get("")
@login_required
def my_sessions():
    rows = list_sessions(g.user.id)
    out = []
    for s in rows:
        item = s.to_dict()
        item["this_device"] = s.fingerprint == g.session_fingerprint
        out.append(item)
    return jsonify(out), 200


@sessions_bp.delete("/<int:session_id>")
@login_required
def revoke_session(session_id):
    result = revoke(g.user, session_id)

    # Only the caller's own current row maps to g.token
    if result["was_current"] and result["account_id"] == g.user.id:
        get_identity_provider().revoke(g.token)
    return jsonify(result), 200


@sessions_bp.post("/revoke-others")
@login_required
def revoke_others():
    count = revoke_all_except(g.user, g.user.id, g.session_fingerprint)
    return jsonify(revoked_sessions=count), 200

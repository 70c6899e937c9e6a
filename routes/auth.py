from flask import Blueprint, request, jsonify, g

from models.user import User
from security.bruteforce import is_locked, record_login_attempt
from security.identity import get_identity_provider
from security.origin import origin_from_request
from security.session import current_session, revoke, upsert_current_session
from utils.audit import list_audit_logs
from utils.auth_context import ensure_account, login_required
from utils.validation import require_email


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _locked_response(result):
    return jsonify(
        error=result.message,
        locked_until=result.locked_until.isoformat() if result.locked_until else None,
        retry_after_seconds=result.seconds_remaining,
    ), 429


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = require_email(data.get("email"))
    password = data.get("password") or ""
    if not isinstance(password, str):
        password = ""

    origin = origin_from_request(data)

    # A locked account never reaches the identity provider
    locked, _ = is_locked(email)
    if locked:
        user = User.query.filter_by(email=email).first()
        result = record_login_attempt(email, False, origin, account_id=user.id if user else None)
        return _locked_response(result)

    provider = get_identity_provider()
    token = provider.authenticate(email, password) if password else None

    user = ensure_account(email) if token else User.query.filter_by(email=email).first()
    result = record_login_attempt(email, token is not None, origin, account_id=user.id if user else None)

    if result.locked:
        if token:
            provider.revoke(token)
        return _locked_response(result)

    if not token:
        return jsonify(error="Invalid credentials", attempts_remaining=result.attempts_remaining), 401

    session = upsert_current_session(user.id, origin.device_fingerprint, origin.device_info, origin.ip_address)

    body = {
        "message": result.message,
        "access_token": token,
        "session": session.to_dict(),
        "new_device": result.new_device,
    }
    if result.impossible_travel is not None and result.impossible_travel.suspicious:
        body["security_warning"] = result.impossible_travel.to_dict()
    return jsonify(body), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        full_name=g.user.full_name,
        roles=[r.name for r in g.user.roles],
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    sess = current_session(g.user.id, g.session_fingerprint)
    if sess is not None:
        revoke(g.user, sess.id)

    get_identity_provider().revoke(g.token)
    return jsonify(message="Logged out"), 200


@auth_bp.get("/audit-logs")
@login_required
def my_audit_logs():
    limit = request.args.get("limit", type=int) or 100
    rows = list_audit_logs(actor_id=g.user.id, limit=limit)
    return jsonify([r.to_dict() for r in rows]), 200

from functools import wraps
from flask import g, jsonify, request

from models import db
from models.user import User, Role
from security.identity import get_identity_provider
from security.origin import origin_from_request
from security.session import upsert_current_session
from utils.validation import normalize_email

def bearer_token():
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

def ensure_account(email: str) -> User:
    """Local account row for an identity-provider email, created on first sight."""
    email = normalize_email(email)
    user = User.query.filter_by(email=email).first()
    if user:
        return user

    user = User(email=email)
    default_role = Role.query.filter_by(name="USER").first()
    if default_role:
        user.roles.append(default_role)
    db.session.add(user)
    db.session.commit()
    return user

def load_current_user():
    g.user = None
    g.token = None
    g.session_fingerprint = None

    token = bearer_token()
    if not token:
        return

    email = get_identity_provider().resolve(token)
    if not email:
        return

    g.user = ensure_account(email)
    g.token = token

    # every authenticated request refreshes the caller's session row
    origin = origin_from_request(with_geo=False)
    g.session_fingerprint = origin.device_fingerprint
    upsert_current_session(g.user.id, origin.device_fingerprint, origin.device_info, origin.ip_address)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper

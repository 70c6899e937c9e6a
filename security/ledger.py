from datetime import datetime

from models import db
from models.db import utcnow
from models.login_attempt import LoginAttempt

def append_attempt(email: str, success: bool, origin=None, now=None) -> LoginAttempt:
    """Write one immutable attempt row and commit it."""
    geo = origin.geo if origin is not None else None
    row = LoginAttempt(
        email=email,
        success=success,
        ip_address=origin.ip_address if origin else None,
        latitude=geo.latitude if geo else None,
        longitude=geo.longitude if geo else None,
        city=geo.city if geo else None,
        country=geo.country if geo else None,
        user_agent=origin.user_agent if origin else None,
        device_fingerprint=origin.device_fingerprint if origin else None,
        created_at=now or utcnow(),
    )
    db.session.add(row)
    db.session.commit()
    return row

def last_successful_attempt(email: str, before=None, with_location=True):
    q = LoginAttempt.query.filter(LoginAttempt.email == email, LoginAttempt.success.is_(True))
    if with_location:
        q = q.filter(LoginAttempt.latitude.isnot(None), LoginAttempt.longitude.isnot(None))
    if before is not None:
        q = q.filter(LoginAttempt.created_at <= before)
    return q.order_by(LoginAttempt.created_at.desc(), LoginAttempt.id.desc()).first()

def has_seen_device(email: str, fingerprint) -> bool:
    if not fingerprint:
        return True
    return (
        LoginAttempt.query
        .filter_by(email=email, success=True, device_fingerprint=fingerprint)
        .first()
        is not None
    )

def has_any_success(email: str) -> bool:
    return LoginAttempt.query.filter_by(email=email, success=True).first() is not None

def recent_attempts(email=None, limit: int = 50):
    q = LoginAttempt.query
    if email:
        q = q.filter_by(email=email)
    return (
        q.order_by(LoginAttempt.created_at.desc(), LoginAttempt.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )

def attempts_since(since: datetime, success: bool) -> int:
    return LoginAttempt.query.filter(
        LoginAttempt.success.is_(success),
        LoginAttempt.created_at >= since,
    ).count()

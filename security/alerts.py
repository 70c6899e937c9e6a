"""
Alert dispatcher.

Turns security decisions into AlertIntent values and hands them to the
configured delivery callable (``ALERT_DELIVERY``, SMTP by default). Delivery
is fire-and-forget: nothing here retries, and nothing here raises into the
request that triggered the alert.
"""
from dataclasses import dataclass, field, asdict

from flask import current_app

RECIPIENT_ACCOUNT = "account"
RECIPIENT_ADMINS = "admins"

ACCOUNT_LOCKED = "account_locked"
MULTIPLE_FAILED_LOGINS = "multiple_failed_logins"
SUSPICIOUS_LOGIN = "suspicious_login"
NEW_DEVICE_LOGIN = "new_device_login"
SESSION_REVOKED = "session_revoked"
ACCOUNT_UNLOCKED = "account_unlocked"
RATE_LIMIT_CHANGED = "rate_limit_changed"

_SECRET_MARKERS = ("password", "token", "secret", "fingerprint", "api_key", "authorization")
_SECRET_KEYS = {"code", "otp", "otp_code", "auth_code", "mfa_code", "verification_code"}


@dataclass(frozen=True)
class AlertIntent:
    alert_type: str
    recipient: str
    account_email: str = None
    details: dict = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)


def redact(details):
    """Drop anything that looks like a credential from a detail payload."""
    if not isinstance(details, dict):
        return details
    clean = {}
    for key, value in details.items():
        name = str(key).lower()
        if name in _SECRET_KEYS or any(marker in name for marker in _SECRET_MARKERS):
            continue
        clean[key] = redact(value) if isinstance(value, dict) else value
    return clean


def account_locked(email, failed_attempts, locked_until, origin=None):
    details = {
        "email": email,
        "failed_attempts": failed_attempts,
        "locked_until": locked_until.isoformat() if locked_until else None,
    }
    details.update(_origin_details(origin))
    return [
        AlertIntent(ACCOUNT_LOCKED, RECIPIENT_ADMINS, email, details),
        AlertIntent(ACCOUNT_LOCKED, RECIPIENT_ACCOUNT, email, details),
    ]


def multiple_failed_logins(email, attempt_count, origin=None):
    details = {"email": email, "attempt_count": attempt_count}
    details.update(_origin_details(origin))
    return [AlertIntent(MULTIPLE_FAILED_LOGINS, RECIPIENT_ADMINS, email, details)]


def suspicious_login(email, anomaly_details, origin=None):
    details = dict(anomaly_details or {})
    details["reason"] = "Impossible travel detected"
    details.update(_origin_details(origin))
    return [AlertIntent(SUSPICIOUS_LOGIN, RECIPIENT_ACCOUNT, email, details)]


def new_device_login(email, origin=None):
    return [AlertIntent(NEW_DEVICE_LOGIN, RECIPIENT_ACCOUNT, email, _origin_details(origin))]


def session_revoked(email, device_info=None, count=1, by_admin=False):
    details = {"device": device_info, "count": count, "by_admin": by_admin}
    return [AlertIntent(SESSION_REVOKED, RECIPIENT_ACCOUNT, email, details)]


def account_unlocked(email):
    return [AlertIntent(ACCOUNT_UNLOCKED, RECIPIENT_ACCOUNT, email, {"email": email})]


def rate_limit_changed(email, new_count):
    return [AlertIntent(RATE_LIMIT_CHANGED, RECIPIENT_ACCOUNT, email, {"request_count": new_count})]


def _origin_details(origin):
    if origin is None:
        return {}
    out = {"ip_address": origin.ip_address, "location": origin.location_label}
    if origin.device_info:
        out["device"] = origin.device_info
    return out


def dispatch(intents) -> int:
    """Deliver each intent; returns how many were handed off without error."""
    if isinstance(intents, AlertIntent):
        intents = [intents]

    delivery = current_app.config.get("ALERT_DELIVERY")
    if delivery is None:
        from utils.emailer import deliver_alert
        delivery = deliver_alert

    delivered = 0
    for intent in intents:
        if intent.recipient == RECIPIENT_ACCOUNT and not intent.account_email:
            current_app.logger.warning("Dropping %s alert without a target account", intent.alert_type)
            continue
        safe = AlertIntent(intent.alert_type, intent.recipient, intent.account_email, redact(intent.details))
        try:
            ok = delivery(safe)
        except Exception:
            current_app.logger.exception("Alert delivery raised for %s", safe.alert_type)
            continue
        if ok is False:
            current_app.logger.warning("Alert %s to %s was not delivered", safe.alert_type, safe.recipient)
            continue
        delivered += 1
    return delivered

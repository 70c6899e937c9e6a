import smtplib
from email.message import EmailMessage

from flask import current_app

from models.user import User, Role

_SUBJECTS = {
    "account_locked": "Account locked after repeated failed logins",
    "multiple_failed_logins": "Multiple failed login attempts",
    "suspicious_login": "Suspicious login on your account",
    "new_device_login": "New device login on your account",
    "session_revoked": "A session on your account was signed out",
    "account_unlocked": "Your account was unlocked",
    "rate_limit_changed": "Your AI assist quota was adjusted",
}

_LABELS = {
    "email": "Account",
    "failed_attempts": "Failed attempts",
    "attempt_count": "Attempt count",
    "locked_until": "Locked until (UTC)",
    "ip_address": "IP address",
    "location": "Location",
    "device": "Device",
    "reason": "Reason",
    "last_location": "Previous location",
    "distance_km": "Distance (km)",
    "time_hours": "Time between logins (hours)",
    "count": "Sessions",
    "request_count": "Requests used today",
}


def send_email(to_email: str, subject: str, body: str):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)
    timeout = current_app.config.get("SMTP_TIMEOUT_SECONDS", 10)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=timeout) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)


def admin_emails():
    rows = User.query.join(User.roles).filter(Role.name == "ADMIN").all()
    return [u.email for u in rows if u.email]


def render_alert(intent):
    subject = _SUBJECTS.get(intent.alert_type, "Security alert")
    lines = [subject, ""]
    if intent.recipient == "admins":
        lines.append(f"Affected account: {intent.account_email}")
    for key, value in (intent.details or {}).items():
        if value is None or key not in _LABELS:
            continue
        lines.append(f"{_LABELS[key]}: {value}")
    lines += ["", "This is an automated security notice."]
    return subject, "\n".join(lines)


def deliver_alert(intent) -> bool:
    """Default ALERT_DELIVERY: one plain-text email per recipient."""
    recipients = admin_emails() if intent.recipient == "admins" else [intent.account_email]
    if not recipients:
        current_app.logger.info("No recipients for %s alert", intent.alert_type)
        return False

    subject, body = render_alert(intent)
    delivered = True
    for to_email in recipients:
        ok, error = send_email(to_email, subject, body)
        if not ok:
            current_app.logger.warning("Alert email to %s failed: %s", to_email, error)
            delivered = False
    return delivered

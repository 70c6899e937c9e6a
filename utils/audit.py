import json

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from security.alerts import redact
from security.origin import client_ip

def _request_origin():
    if not has_request_context():
        return None, None
    ip = client_ip()
    user_agent = request.headers.get("User-Agent", "")
    return ip, (user_agent[:255] if user_agent else None)

def log_event(action: str, actor_id=None, entity=None, entity_id=None, metadata=None):
    """
    Append one audit row in its own commit.

    Callers commit their primary mutation first. A failed audit write is
    rolled back and logged; it never reaches the caller.
    """
    ip, user_agent = _request_origin()
    try:
        row = AuditLog(
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            ip=ip,
            user_agent=user_agent,
            details_json=json.dumps(redact(metadata), default=str) if metadata else None,
        )
        db.session.add(row)
        db.session.commit()
        return row
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Audit write failed for action %s", action)
        return None

def list_audit_logs(action=None, actor_id=None, limit=200):
    limit = max(1, min(int(limit or 200), 500))

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if actor_id is not None:
        q = q.filter(AuditLog.actor_id == actor_id)

    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

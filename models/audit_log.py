import json

from sqlalchemy import event

from models.db import db, utcnow
from security.errors import ImmutableRecordError

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)  # null for system actions
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. LOGIN_FAIL, ADMIN_RATE_LIMIT_SET
    entity = db.Column(db.String(80), nullable=True)   # e.g. account, session
    entity_id = db.Column(db.String(255), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    details_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    @property
    def details(self):
        return json.loads(self.details_json) if self.details_json else {}

    def to_dict(self):
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableRecordError("audit_logs rows are append-only")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError("audit_logs rows are append-only")

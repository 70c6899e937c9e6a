from sqlalchemy import event

from models.db import db, utcnow
from security.errors import ImmutableRecordError

class LoginAttempt(db.Model):
    """One row per authentication attempt. Never updated, never deleted by the app."""
    __tablename__ = "login_attempts"
    __table_args__ = (
        db.Index("ix_login_attempts_email_created_at", "email", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    success = db.Column(db.Boolean, default=False, nullable=False)

    ip_address = db.Column(db.String(64), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    city = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    device_fingerprint = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def location_label(self):
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return self.city or self.country or "Unknown"


@event.listens_for(LoginAttempt, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableRecordError("login_attempts rows are immutable")


@event.listens_for(LoginAttempt, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError("login_attempts rows are immutable")

from models.db import db, utcnow

class Session(db.Model):
    __tablename__ = "sessions"
    __table_args__ = (
        db.UniqueConstraint("account_id", "fingerprint", name="uq_sessions_account_fingerprint"),
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # device/token fingerprint, never the raw token
    fingerprint = db.Column(db.String(128), nullable=False)
    device_info = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_active_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    is_current = db.Column(db.Boolean, default=False, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "device_info": self.device_info,
            "ip_address": self.ip_address,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "is_current": self.is_current,
        }


# At most one current session per account
db.Index(
    "uq_sessions_current_account",
    Session.account_id,
    unique=True,
    sqlite_where=Session.is_current.is_(True),
    postgresql_where=Session.is_current.is_(True),
)

from models.db import db, utcnow

class AccountLockout(db.Model):
    """
    Per-account failure counter. Mutated only through the conditional
    statements in security.bruteforce, never by assigning attributes.
    """
    __tablename__ = "account_lockouts"
    __table_args__ = (
        db.CheckConstraint("failed_attempts >= 0", name="ck_account_lockouts_failed_attempts"),
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    failed_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)
    last_failed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

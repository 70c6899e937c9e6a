from models.db import db, utcnow

class RateLimitCounter(db.Model):
    __tablename__ = "rate_limit_counters"
    __table_args__ = (
        db.CheckConstraint("request_count >= 0", name="ck_rate_limit_counters_request_count"),
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False, index=True)

    request_count = db.Column(db.Integer, default=0, nullable=False)
    # calendar day the count belongs to; only ever moves forward
    reset_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

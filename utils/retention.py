from datetime import timedelta

from flask import current_app
from sqlalchemy import delete

from models import db
from models.audit_log import AuditLog
from models.db import utcnow
from models.login_attempt import LoginAttempt
from utils.audit import log_event
from utils.validation import require_count

def purge_stale_records(days=None, now=None) -> dict:
    """
    Delete ledger and audit rows older than the retention window.

    Bulk DELETE statements skip the ORM immutability hooks; this is the only
    place allowed to remove those rows.
    """
    if days is None:
        days = current_app.config.get("RETENTION_DAYS", 30)
    days = require_count(days, "days", minimum=1)
    cutoff = (now or utcnow()) - timedelta(days=days)

    attempts = db.session.execute(
        delete(LoginAttempt)
        .where(LoginAttempt.created_at < cutoff)
        .execution_options(synchronize_session=False)
    ).rowcount
    audits = db.session.execute(
        delete(AuditLog)
        .where(AuditLog.created_at < cutoff)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.session.commit()

    current_app.logger.info(
        "Retention purge before %s removed %d login attempts and %d audit rows", cutoff, attempts, audits
    )

    log_event(
        "RETENTION_PURGE",
        entity="retention",
        metadata={"cutoff": cutoff.isoformat(), "login_attempts": attempts, "audit_logs": audits},
    )
    return {"cutoff": cutoff.isoformat(), "login_attempts_deleted": attempts, "audit_logs_deleted": audits}

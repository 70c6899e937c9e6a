from flask import current_app
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.db import upsert_insert, utcnow
from models.session import Session
from models.user import User
from security import alerts
from security.errors import NotFoundError, ValidationError
from security.rbac import require_role
from utils.audit import log_event
from utils.validation import require_account_id

def _require_fingerprint(fingerprint) -> str:
    if not isinstance(fingerprint, str) or not fingerprint.strip():
        raise ValidationError("Invalid session fingerprint")
    return fingerprint.strip()[:128]

def upsert_current_session(account_id, fingerprint, device_info=None, ip=None, now=None) -> Session:
    """
    Create or refresh the (account, fingerprint) row and make it the only
    current one. The partial unique index on current rows turns a lost race
    into an IntegrityError, which is retried.
    """
    account_id = require_account_id(account_id)
    fingerprint = _require_fingerprint(fingerprint)
    device_info = device_info[:255] if device_info else None
    retries = int(current_app.config.get("SESSION_UPSERT_RETRIES", 3))

    for attempt in range(1, retries + 1):
        now_ts = now or utcnow()
        try:
            db.session.execute(
                update(Session)
                .where(
                    Session.account_id == account_id,
                    Session.fingerprint != fingerprint,
                    Session.is_current.is_(True),
                )
                .values(is_current=False)
                .execution_options(synchronize_session=False)
            )
            stmt = upsert_insert(Session).values(
                account_id=account_id,
                fingerprint=fingerprint,
                device_info=device_info,
                ip_address=ip,
                created_at=now_ts,
                last_active_at=now_ts,
                is_current=True,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["account_id", "fingerprint"],
                set_={
                    "is_current": True,
                    "last_active_at": now_ts,
                    "device_info": stmt.excluded.device_info,
                    "ip_address": stmt.excluded.ip_address,
                },
            )
            db.session.execute(stmt)
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            if attempt == retries:
                raise
            current_app.logger.info("Concurrent session upsert for account %s, retrying", account_id)

    return Session.query.filter_by(account_id=account_id, fingerprint=fingerprint).first()

def list_sessions(account_id):
    account_id = require_account_id(account_id)
    return (
        Session.query
        .filter_by(account_id=account_id)
        .order_by(Session.last_active_at.desc(), Session.id.desc())
        .all()
    )

def current_session(account_id, fingerprint):
    return Session.query.filter_by(account_id=account_id, fingerprint=fingerprint).first()

def revoke(actor, session_id: int) -> dict:
    """
    Delete one session row. The owner may revoke their own rows; anything
    else needs ADMIN. When `was_current` comes back True the caller must also
    invalidate the live token with the identity provider.
    """
    if isinstance(session_id, bool) or not isinstance(session_id, int):
        raise ValidationError("Invalid session id")

    sess = db.session.get(Session, session_id)
    if sess is None:
        raise NotFoundError("Session not found")

    by_admin = sess.account_id != actor.id
    if by_admin:
        require_role(actor)

    account_id = sess.account_id
    was_current = sess.is_current
    device_info = sess.device_info

    db.session.delete(sess)
    db.session.commit()

    log_event(
        "SESSION_REVOKED",
        actor_id=actor.id,
        entity="session",
        entity_id=session_id,
        metadata={"account_id": account_id, "device": device_info, "was_current": was_current, "by_admin": by_admin},
    )

    own_current = not by_admin and was_current
    if not own_current:
        owner = db.session.get(User, account_id)
        if owner is not None:
            alerts.dispatch(alerts.session_revoked(owner.email, device_info, by_admin=by_admin))

    return {"revoked": True, "session_id": session_id, "account_id": account_id, "was_current": was_current}

def revoke_all_except(actor, account_id, fingerprint) -> int:
    """Bulk delete every session of the account except the one matching `fingerprint`."""
    account_id = require_account_id(account_id)
    fingerprint = _require_fingerprint(fingerprint)

    by_admin = account_id != actor.id
    if by_admin:
        require_role(actor)

    result = db.session.execute(
        delete(Session)
        .where(Session.account_id == account_id, Session.fingerprint != fingerprint)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    count = result.rowcount

    log_event(
        "SESSION_REVOKED_ALL",
        actor_id=actor.id,
        entity="account",
        entity_id=account_id,
        metadata={"account_id": account_id, "revoked_sessions": count, "by_admin": by_admin},
    )

    if count:
        owner = db.session.get(User, account_id)
        if owner is not None:
            alerts.dispatch(alerts.session_revoked(owner.email, count=count, by_admin=by_admin))
    return count

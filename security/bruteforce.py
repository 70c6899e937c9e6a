"""
Lockout state machine over the login-attempt ledger.

Every counter change is a single conditional statement at the datastore, so
concurrent failures for one account serialize on its row: the count reaches
the threshold exactly once and never goes past it.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, case, delete, or_, select, update

from models import db
from models.account_lockout import AccountLockout
from models.db import upsert_insert, utcnow
from security import alerts
from security.anomaly import AnomalyResult, check_impossible_travel
from security.ledger import append_attempt, has_any_success, has_seen_device
from security.rbac import require_role
from utils.audit import log_event
from utils.validation import require_email


@dataclass
class LoginAttemptResult:
    locked: bool
    message: str
    locked_until: datetime = None
    seconds_remaining: int = 0
    attempts_remaining: int = None
    should_alert: bool = False
    alert_type: str = None
    alert_details: dict = None
    impossible_travel: AnomalyResult = None
    new_device: bool = False

    def to_dict(self):
        return {
            "locked": self.locked,
            "message": self.message,
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "seconds_remaining": self.seconds_remaining,
            "attempts_remaining": self.attempts_remaining,
            "should_alert": self.should_alert,
            "alert_type": self.alert_type,
            "alert_details": self.alert_details,
            "impossible_travel": self.impossible_travel.to_dict() if self.impossible_travel else None,
            "new_device": self.new_device,
        }


def _policy():
    cfg = current_app.config
    return (
        int(cfg.get("MAX_LOGIN_ATTEMPTS", 5)),
        timedelta(minutes=cfg.get("LOCKOUT_MINUTES", 15)),
        timedelta(minutes=cfg.get("FAILED_LOGIN_WINDOW_MINUTES", 15)),
    )


def _seconds_left(locked_until, now) -> int:
    if locked_until is None:
        return 0
    return max(int((locked_until - now).total_seconds()), 1)


def lockout_state(email: str):
    """
    Returns (failed_attempts, locked_until) straight from the row, bypassing
    the ORM identity map so a read never sees a stale counter.
    """
    row = db.session.execute(
        select(AccountLockout.failed_attempts, AccountLockout.locked_until)
        .where(AccountLockout.email == email)
    ).first()
    if row is None:
        return 0, None
    return row.failed_attempts, row.locked_until


def is_locked(email: str, now=None) -> tuple[bool, int]:
    """
    Returns (locked, seconds_remaining)
    """
    now = now or utcnow()
    _, locked_until = lockout_state(email)
    if locked_until is None or locked_until <= now:
        return False, 0
    return True, _seconds_left(locked_until, now)


def active_lockouts(now=None):
    now = now or utcnow()
    return (
        AccountLockout.query
        .filter(AccountLockout.locked_until > now)
        .order_by(AccountLockout.locked_until.desc())
        .all()
    )


def _register_failure(email: str, now):
    """
    Atomic increment-and-compare. Returns (failed_attempts, locked_until,
    locked_now); locked_now is True only for the request whose increment
    reached the threshold.
    """
    threshold, duration, window = _policy()

    db.session.execute(
        upsert_insert(AccountLockout)
        .values(email=email, failed_attempts=0, locked_until=None, created_at=now, updated_at=now)
        .on_conflict_do_nothing(index_elements=["email"])
    )

    # An elapsed lock or a stale run of failures starts a fresh count
    db.session.execute(
        update(AccountLockout)
        .where(
            AccountLockout.email == email,
            or_(
                and_(AccountLockout.locked_until.isnot(None), AccountLockout.locked_until <= now),
                and_(AccountLockout.locked_until.is_(None), AccountLockout.last_failed_at < now - window),
            ),
        )
        .values(failed_attempts=0, locked_until=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    row = db.session.execute(
        update(AccountLockout)
        .where(AccountLockout.email == email, AccountLockout.failed_attempts < threshold)
        .values(
            failed_attempts=AccountLockout.failed_attempts + 1,
            last_failed_at=now,
            updated_at=now,
            locked_until=case(
                (AccountLockout.failed_attempts + 1 >= threshold, now + duration),
                else_=None,
            ),
        )
        .returning(AccountLockout.failed_attempts, AccountLockout.locked_until)
        .execution_options(synchronize_session=False)
    ).first()
    db.session.commit()

    if row is None:
        # Already at the threshold: a concurrent request locked the account
        failed, locked_until = lockout_state(email)
        return failed, locked_until, False
    return row.failed_attempts, row.locked_until, row.locked_until is not None


def _locked_result(email, locked_until, now, origin=None) -> LoginAttemptResult:
    seconds = _seconds_left(locked_until, now)
    log_event(
        "LOGIN_LOCKED",
        entity="account",
        entity_id=email,
        metadata={
            "email": email,
            "seconds_left": seconds,
            "ip_address": origin.ip_address if origin else None,
        },
    )
    return LoginAttemptResult(
        locked=True,
        message="Account temporarily locked. Try again later.",
        locked_until=locked_until,
        seconds_remaining=seconds,
        attempts_remaining=0,
    )


def _origin_details(email, origin):
    return {
        "email": email,
        "ip_address": origin.ip_address if origin else None,
        "location": origin.location_label if origin else "Unknown",
    }


def _record_failure(email, origin, now, account_id=None) -> LoginAttemptResult:
    threshold, _, _ = _policy()
    failed, locked_until, locked_now = _register_failure(email, now)

    if not locked_now and locked_until is not None and locked_until > now:
        return _locked_result(email, locked_until, now, origin)

    log_event(
        "LOGIN_FAIL",
        actor_id=account_id,
        entity="account",
        entity_id=email,
        metadata={"email": email, "fail_count": failed, "locked_now": locked_now},
    )

    if locked_now:
        current_app.logger.info("Account %s locked until %s after %d failures", email, locked_until, failed)
        details = _origin_details(email, origin)
        details["failed_attempts"] = failed
        log_event(
            "ACCOUNT_LOCKED",
            entity="account",
            entity_id=email,
            metadata={**details, "locked_until": locked_until.isoformat()},
        )
        alerts.dispatch(alerts.account_locked(email, failed, locked_until, origin))
        return LoginAttemptResult(
            locked=True,
            message="Too many failed attempts. Account locked.",
            locked_until=locked_until,
            seconds_remaining=_seconds_left(locked_until, now),
            attempts_remaining=0,
            should_alert=True,
            alert_type=alerts.ACCOUNT_LOCKED,
            alert_details=details,
        )

    result = LoginAttemptResult(
        locked=False,
        message="Login failed",
        attempts_remaining=max(threshold - failed, 0),
    )
    if failed >= int(current_app.config.get("FAILED_LOGIN_ALERT_THRESHOLD", 3)):
        details = _origin_details(email, origin)
        details["attempt_count"] = failed
        alerts.dispatch(alerts.multiple_failed_logins(email, failed, origin))
        result.should_alert = True
        result.alert_type = alerts.MULTIPLE_FAILED_LOGINS
        result.alert_details = details
    return result


def _record_success(email, origin, now, account_id=None) -> LoginAttemptResult:
    db.session.execute(
        delete(AccountLockout)
        .where(
            AccountLockout.email == email,
            or_(AccountLockout.locked_until.is_(None), AccountLockout.locked_until <= now),
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    # Re-read at write time: a concurrent failure may have locked the account
    _, locked_until = lockout_state(email)
    if locked_until is not None and locked_until > now:
        append_attempt(email, False, origin, now)
        return _locked_result(email, locked_until, now, origin)

    geo = origin.geo if origin is not None else None
    anomaly = check_impossible_travel(
        email,
        geo.latitude if geo else None,
        geo.longitude if geo else None,
        now,
    )
    new_device = bool(
        current_app.config.get("NEW_DEVICE_ALERTS", True)
        and origin is not None
        and has_any_success(email)
        and not has_seen_device(email, origin.device_fingerprint)
    )

    append_attempt(email, True, origin, now)
    log_event(
        "LOGIN_SUCCESS",
        actor_id=account_id,
        entity="account",
        entity_id=email,
        metadata={
            **_origin_details(email, origin),
            "device": origin.device_info if origin else None,
            "new_device": new_device,
        },
    )

    result = LoginAttemptResult(
        locked=False,
        message="Login successful",
        impossible_travel=anomaly,
        new_device=new_device,
    )

    intents = []
    if anomaly.suspicious:
        log_event(
            "IMPOSSIBLE_TRAVEL",
            actor_id=account_id,
            entity="account",
            entity_id=email,
            metadata=anomaly.details,
        )
        intents += alerts.suspicious_login(email, anomaly.details, origin)
        result.should_alert = True
        result.alert_type = alerts.SUSPICIOUS_LOGIN
        result.alert_details = anomaly.details
    if new_device:
        intents += alerts.new_device_login(email, origin)
    if intents:
        alerts.dispatch(intents)
    return result


def record_login_attempt(email, success: bool, origin=None, now=None, account_id=None) -> LoginAttemptResult:
    """
    Record the identity provider's verdict for one attempt and return the
    lockout decision. A locked account rejects the attempt whatever the
    verdict; the caller must not hand out a session in that case.
    """
    email = require_email(email)
    now = now or utcnow()

    _, locked_until = lockout_state(email)
    if locked_until is not None and locked_until > now:
        append_attempt(email, False, origin, now)
        return _locked_result(email, locked_until, now, origin)

    if success:
        return _record_success(email, origin, now, account_id)

    append_attempt(email, False, origin, now)
    return _record_failure(email, origin, now, account_id)


def admin_unlock(actor, email) -> bool:
    """Force Unlocked. Returns True when there was a lockout row to clear."""
    require_role(actor)
    email = require_email(email)

    result = db.session.execute(
        delete(AccountLockout)
        .where(AccountLockout.email == email)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    cleared = result.rowcount > 0

    log_event(
        "ADMIN_ACCOUNT_UNLOCKED",
        actor_id=actor.id,
        entity="account",
        entity_id=email,
        metadata={"unlocked_email": email, "had_lockout": cleared},
    )
    if cleared:
        alerts.dispatch(alerts.account_unlocked(email))
    return cleared

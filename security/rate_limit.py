"""
Per-account daily quota for the AI assist feature.

The check-then-increment is one conditional UPDATE: two requests racing for
the last unit both hit the row, and only one of them gets a row back.
"""
from datetime import timezone
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import select, update

from models import db
from models.db import upsert_insert, utcnow
from models.rate_limit import RateLimitCounter
from models.user import User
from security import alerts
from security.rbac import require_role
from utils.audit import log_event
from utils.validation import require_account_id, require_count


def today(now=None):
    """Current calendar day in QUOTA_TIMEZONE; `now` is naive UTC."""
    now = now or utcnow()
    tz = ZoneInfo(current_app.config.get("QUOTA_TIMEZONE", "UTC"))
    return now.replace(tzinfo=timezone.utc).astimezone(tz).date()


def _limit(daily_limit):
    if daily_limit is None:
        daily_limit = current_app.config.get("AI_ASSIST_DAILY_LIMIT", 10)
    return require_count(daily_limit, "daily_limit", minimum=1)


def _ensure_row(account_id, day, now):
    db.session.execute(
        upsert_insert(RateLimitCounter)
        .values(account_id=account_id, request_count=0, reset_date=day, created_at=now, updated_at=now)
        .on_conflict_do_nothing(index_elements=["account_id"])
    )
    # Day rollover; reset_date only moves forward
    db.session.execute(
        update(RateLimitCounter)
        .where(RateLimitCounter.account_id == account_id, RateLimitCounter.reset_date < day)
        .values(request_count=0, reset_date=day, updated_at=now)
        .execution_options(synchronize_session=False)
    )


def check_and_consume(account_id, daily_limit=None, now=None) -> bool:
    account_id = require_account_id(account_id)
    limit = _limit(daily_limit)
    now = now or utcnow()
    day = today(now)

    _ensure_row(account_id, day, now)
    row = db.session.execute(
        update(RateLimitCounter)
        .where(
            RateLimitCounter.account_id == account_id,
            RateLimitCounter.reset_date == day,
            RateLimitCounter.request_count < limit,
        )
        .values(request_count=RateLimitCounter.request_count + 1, updated_at=now)
        .returning(RateLimitCounter.request_count)
        .execution_options(synchronize_session=False)
    ).first()
    db.session.commit()

    if row is None:
        current_app.logger.info("Quota exhausted for account %s (limit %d)", account_id, limit)
        return False
    return True


def usage(account_id, now=None):
    """Returns (request_count, reset_date) as seen today; a stale day reads as zero."""
    account_id = require_account_id(account_id)
    day = today(now)
    row = db.session.execute(
        select(RateLimitCounter.request_count, RateLimitCounter.reset_date)
        .where(RateLimitCounter.account_id == account_id)
    ).first()
    if row is None or row.reset_date < day:
        return 0, day
    return row.request_count, row.reset_date


def remaining(account_id, daily_limit=None, now=None) -> int:
    limit = _limit(daily_limit)
    count, _ = usage(account_id, now)
    return max(0, limit - count)


def usage_today(now=None):
    day = today(now)
    rows = db.session.execute(
        select(RateLimitCounter.account_id, RateLimitCounter.request_count, User.email)
        .join(User, User.id == RateLimitCounter.account_id)
        .where(RateLimitCounter.reset_date == day)
        .order_by(RateLimitCounter.request_count.desc())
    ).all()
    return [
        {"account_id": r.account_id, "email": r.email, "request_count": r.request_count, "reset_date": day.isoformat()}
        for r in rows
    ]


def _override(actor, account_id, new_count, action, now):
    now = now or utcnow()
    day = today(now)

    stmt = upsert_insert(RateLimitCounter).values(
        account_id=account_id, request_count=new_count, reset_date=day, created_at=now, updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["account_id"],
        set_={"request_count": new_count, "reset_date": day, "updated_at": now},
    )
    db.session.execute(stmt)
    db.session.commit()

    log_event(
        action,
        actor_id=actor.id,
        entity="rate_limit",
        entity_id=account_id,
        metadata={"target_user_id": account_id, "new_count": new_count, "reset_date": day.isoformat()},
    )

    target = db.session.get(User, account_id)
    if target is not None:
        alerts.dispatch(alerts.rate_limit_changed(target.email, new_count))


def set_count(actor, account_id, new_count, now=None):
    """Admin override; bypasses the increment path entirely."""
    require_role(actor)
    account_id = require_account_id(account_id)
    new_count = require_count(
        new_count, "count", minimum=0, maximum=current_app.config.get("QUOTA_MAX_OVERRIDE", 10000)
    )
    _override(actor, account_id, new_count, "ADMIN_RATE_LIMIT_SET", now)


def reset_count(actor, account_id, now=None):
    require_role(actor)
    account_id = require_account_id(account_id)
    _override(actor, account_id, 0, "ADMIN_RATE_LIMIT_RESET", now)

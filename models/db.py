from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.dialects import postgresql, sqlite

db = SQLAlchemy()


def utcnow() -> datetime:
    # Naive UTC, matching how every DateTime column is stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


def upsert_insert(model):
    """
    Dialect-specific INSERT for `model` exposing on_conflict_do_nothing /
    on_conflict_do_update, so counters can be created and mutated in a single
    statement instead of a read-then-write in Python.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Atomic upserts are not supported on {dialect!r}")

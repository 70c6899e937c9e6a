"""Shared test fixtures.

Every test gets a fresh SQLite file, so rows never leak between tests and
threads in concurrency tests share one real database with real locking.
"""

from __future__ import annotations

import secrets
from typing import Callable, Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from app import create_app
from config import Config
from models import db
from models.user import Role, User
from security.alerts import AlertIntent
from security.identity import IdentityProvider


# ─── Doubles ────────────────────────────────────────────────────────────────


class FakeIdentityProvider(IdentityProvider):
    """In-memory identity provider: email/password pairs and live tokens."""

    def __init__(self) -> None:
        self.passwords: dict[str, str] = {}
        self.tokens: dict[str, str] = {}
        self.revoked: list[str] = []

    def register(self, email: str, password: str) -> None:
        self.passwords[email] = password

    def issue(self, email: str) -> str:
        token = secrets.token_urlsafe(16)
        self.tokens[token] = email
        return token

    def authenticate(self, email: str, password: str) -> str | None:
        if self.passwords.get(email) != password:
            return None
        return self.issue(email)

    def resolve(self, token: str) -> str | None:
        return self.tokens.get(token)

    def revoke(self, token: str) -> None:
        self.revoked.append(token)
        self.tokens.pop(token, None)


class AlertCollector:
    """ALERT_DELIVERY stand-in that records every intent it is handed."""

    def __init__(self) -> None:
        self.intents: list[AlertIntent] = []

    def __call__(self, intent: AlertIntent) -> bool:
        self.intents.append(intent)
        return True

    def of_type(self, alert_type: str) -> list[AlertIntent]:
        return [i for i in self.intents if i.alert_type == alert_type]


# ─── App / DB ───────────────────────────────────────────────────────────────


@pytest.fixture()
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def alerts_sent() -> AlertCollector:
    return AlertCollector()


@pytest.fixture()
def app(tmp_path, identity: FakeIdentityProvider, alerts_sent: AlertCollector) -> Generator[Flask, None, None]:
    class TestConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "test.db")
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "check_same_thread": False}}
        AUTO_CREATE_TABLES = True
        IDENTITY_PROVIDER = identity
        ALERT_DELIVERY = alerts_sent
        GEO_LOOKUP_ENABLED = False
        RETENTION_SECRET = "cron-secret"
        MAX_LOGIN_ATTEMPTS = 5
        LOCKOUT_MINUTES = 15
        AI_ASSIST_DAILY_LIMIT = 10

    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.engine.dispose()
    ctx.pop()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()


# ─── Accounts ───────────────────────────────────────────────────────────────


def _make_user(email: str, role_names: list[str]) -> User:
    user = User(email=email)
    for name in role_names:
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def user(app: Flask, identity: FakeIdentityProvider) -> User:
    identity.register("jane@example.com", "correct-horse")
    return _make_user("jane@example.com", ["USER"])


@pytest.fixture()
def other_user(app: Flask, identity: FakeIdentityProvider) -> User:
    identity.register("sam@example.com", "battery-staple")
    return _make_user("sam@example.com", ["USER"])


@pytest.fixture()
def admin(app: Flask, identity: FakeIdentityProvider) -> User:
    identity.register("admin@example.com", "admin-pass")
    return _make_user("admin@example.com", ["ADMIN", "USER"])


@pytest.fixture()
def token_for(identity: FakeIdentityProvider) -> Callable[[User], str]:
    def _issue(account: User) -> str:
        return identity.issue(account.email)
    return _issue


def auth(token: str, **extra: str) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {token}"}
    headers.update(extra)
    return headers

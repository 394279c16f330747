"""Shared test fixtures."""

import json
import uuid
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from journal_reminders.database.base import Base
from journal_reminders.entries.models import Entry
from journal_reminders.notifications.models import (
    FollowUpCancellation,
    NotificationLog,
    NotificationSettings,
    PushSubscription,
)
from journal_reminders.notifications.schemas import (
    NotificationSettingsUpdate,
    SubscriptionDescriptor,
    SubscriptionKeys,
)
from journal_reminders.notifications.settings_service import update_settings
from journal_reminders.notifications.subscriptions import register_subscription

# Models must be imported so Base.metadata.create_all() sees all tables.
_ALL_MODELS = [Entry, FollowUpCancellation, NotificationLog, NotificationSettings, PushSubscription]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Factory bound to the test database, for work that opens its own session."""
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    """In-memory SQLite session.

    SQLite has no timestamptz; UTCDateTime re-attaches UTC on read so
    comparisons behave like PostgreSQL.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user_id():
    return uuid.uuid4()


class FakeGateway:
    """In-memory PushGateway. ``responses`` maps endpoint to a status code or an exception to raise."""

    def __init__(self, responses: dict | None = None, default: int = 201) -> None:
        self.responses = responses or {}
        self.default = default
        self.calls: list[tuple[str, dict, dict]] = []

    def send(self, endpoint: str, keys: dict, payload: str) -> int:
        self.calls.append((endpoint, keys, json.loads(payload)))
        outcome = self.responses.get(endpoint, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def gateway():
    return FakeGateway()


def save_settings(db, user_id, **fields):
    """Upsert settings for ``user_id`` (defaults overlaid with ``fields``) and commit."""
    saved = update_settings(db, user_id, NotificationSettingsUpdate(**fields))
    db.commit()
    return saved


def add_entry(db, user_id, created_at: datetime, is_deleted: bool = False) -> Entry:
    entry = Entry(user_id=user_id, content="Today was fine.", created_at=created_at, is_deleted=is_deleted)
    db.add(entry)
    db.commit()
    return entry


def add_subscription(db, user_id, endpoint: str) -> PushSubscription:
    descriptor = SubscriptionDescriptor(endpoint=endpoint, keys=SubscriptionKeys(p256dh="p256dh-key", auth="auth-key"))
    return register_subscription(db, user_id, descriptor, user_agent="pytest")

"""Tests for HTTP routes using FastAPI TestClient."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import patch

import pytest
from conftest import add_subscription, save_settings
from fastapi.testclient import TestClient

from journal_reminders.config import settings
from journal_reminders.database.base import get_db
from journal_reminders.dependencies import get_current_user_id, get_session_factory
from journal_reminders.notifications.cancellation import is_follow_up_cancelled
from journal_reminders.notifications.engine import TickSummary
from journal_reminders.notifications.models import NotificationLog, NotificationType
from journal_reminders.notifications.subscriptions import list_subscriptions
from journal_reminders.rate_limit import limiter

SERVICE_KEY = "test-service-key"


def _make_client(db_session, session_factory, gateway, user_id=None):
    from journal_reminders.main import create_app

    @asynccontextmanager
    async def _test_lifespan(app):
        app.state.push_gateway = gateway
        yield

    def _test_db():
        yield db_session

    with patch("journal_reminders.main.lifespan", _test_lifespan), patch("journal_reminders.main.settings") as mock_settings:
        mock_settings.trusted_hosts_list = ["*"]
        mock_settings.cors_origins_list = ["*"]
        mock_settings.cors_allow_credentials = True
        mock_settings.secret_key = "test-secret"
        app = create_app()

    app.dependency_overrides[get_db] = _test_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    if user_id is not None:
        app.dependency_overrides[get_current_user_id] = lambda: user_id
    return app


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    yield
    limiter.reset()


@pytest.fixture
def anon_client(db_session, session_factory, gateway):
    app = _make_client(db_session, session_factory, gateway)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def auth_client(db_session, session_factory, gateway, user_id):
    app = _make_client(db_session, session_factory, gateway, user_id=user_id)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def service_key():
    with patch.object(settings, "service_role_key", SERVICE_KEY):
        yield {"Authorization": f"Bearer {SERVICE_KEY}"}


class TestHealthEndpoint:
    def test_health_returns_ok(self, anon_client):
        response = anon_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["db"] == "ok"
        assert data["push"] == "enabled"
        assert "uptime_seconds" in data

    def test_security_headers(self, anon_client):
        response = anon_client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestAuthRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/notifications/settings"),
            ("put", "/api/v1/notifications/settings"),
            ("post", "/api/v1/notifications/subscribe"),
            ("post", "/api/v1/notifications/entries"),
        ],
    )
    def test_returns_401_json(self, anon_client, method, path):
        kwargs = {} if method == "get" else {"json": {}}
        response = getattr(anon_client, method)(path, **kwargs)
        assert response.status_code == 401
        assert response.json()["error"] == "Authentication required"


class TestSettingsRoutes:
    def test_get_defaults(self, auth_client):
        response = auth_client.get("/api/v1/notifications/settings")
        assert response.status_code == 200
        data = response.json()["settings"]
        assert data["enabled"] is False
        assert data["primary_time"] == "21:00"
        assert data["timezone"] == "Asia/Tokyo"

    def test_partial_update(self, auth_client):
        response = auth_client.put(
            "/api/v1/notifications/settings",
            json={"enabled": True, "primary_time": "22:15", "active_days": [5, 1]},
        )
        assert response.status_code == 200
        data = response.json()["settings"]
        assert data["enabled"] is True
        assert data["primary_time"] == "22:15"
        assert data["active_days"] == [1, 5]
        assert data["follow_up_interval_minutes"] == 60

        again = auth_client.get("/api/v1/notifications/settings").json()["settings"]
        assert again["primary_time"] == "22:15"

    @pytest.mark.parametrize(
        "body",
        [
            {"timezone": "Mars/Olympus"},
            {"follow_up_interval_minutes": 5},
            {"follow_up_max_count": 9},
            {"active_days": [1, 1]},
            {"primary_time": "7:00"},
        ],
    )
    def test_invalid_update_rejected(self, auth_client, body):
        response = auth_client.put("/api/v1/notifications/settings", json=body)
        assert response.status_code == 422


class TestSubscribeRoutes:
    BODY = {
        "subscription": {"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "p", "auth": "a"}},
        "userAgent": "Mozilla/5.0",
    }

    def test_subscribe(self, auth_client, db_session, user_id):
        response = auth_client.post("/api/v1/notifications/subscribe", json=self.BODY)
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["alreadyRegistered"] is False
        assert data["subscriptionId"]
        assert list_subscriptions(db_session, user_id)[0].user_agent == "Mozilla/5.0"

    def test_duplicate_is_success(self, auth_client):
        auth_client.post("/api/v1/notifications/subscribe", json=self.BODY)
        response = auth_client.post("/api/v1/notifications/subscribe", json=self.BODY)
        assert response.status_code == 200
        assert response.json() == {"success": True, "subscriptionId": None, "alreadyRegistered": True}

    def test_missing_keys_rejected(self, auth_client):
        response = auth_client.post(
            "/api/v1/notifications/subscribe", json={"subscription": {"endpoint": "https://push.example.com/x"}}
        )
        assert response.status_code == 422

    def test_unsubscribe(self, auth_client, db_session, user_id):
        add_subscription(db_session, user_id, "https://push.example.com/abc")
        response = auth_client.delete(
            "/api/v1/notifications/subscribe", params={"endpoint": "https://push.example.com/abc"}
        )
        assert response.status_code == 200
        assert response.json()["removed"] is True
        db_session.expire_all()
        assert list_subscriptions(db_session, user_id) == []

    def test_unsubscribe_unknown_endpoint(self, auth_client):
        response = auth_client.delete(
            "/api/v1/notifications/subscribe", params={"endpoint": "https://push.example.com/none"}
        )
        assert response.status_code == 200
        assert response.json()["removed"] is False

    def test_rate_limited(self, auth_client):
        statuses = [
            auth_client.delete("/api/v1/notifications/subscribe", params={"endpoint": "x"}).status_code
            for _ in range(11)
        ]
        assert statuses[:10] == [200] * 10
        assert statuses[10] == 429


class TestVapidPublicKey:
    def test_not_configured(self, anon_client):
        with patch("journal_reminders.notifications.routes.is_notification_enabled", return_value=False):
            response = anon_client.get("/api/v1/notifications/vapid-public-key")
        assert response.status_code == 503

    def test_configured(self, anon_client):
        with patch("journal_reminders.notifications.routes.is_notification_enabled", return_value=True), patch(
            "journal_reminders.notifications.routes.get_vapid_config"
        ) as mock_config:
            mock_config.return_value.public_key = "BPublicKey"
            response = anon_client.get("/api/v1/notifications/vapid-public-key")
        assert response.status_code == 200
        assert response.json() == {"publicKey": "BPublicKey"}


class TestEntryCreatedRoute:
    def test_accepted_and_cancels_follow_ups(self, auth_client, db_session, user_id):
        response = auth_client.post(
            "/api/v1/notifications/entries",
            json={"entryId": "8a6e0804-2bd0-4672-b79d-d97027f9071a", "createdAt": "2025-12-18T12:30:00Z"},
        )
        assert response.status_code == 202
        db_session.expire_all()
        assert is_follow_up_cancelled(db_session, user_id, date(2025, 12, 18)) is True

    def test_naive_timestamp_rejected(self, auth_client):
        response = auth_client.post(
            "/api/v1/notifications/entries",
            json={"entryId": "8a6e0804-2bd0-4672-b79d-d97027f9071a", "createdAt": "2025-12-18T12:30:00"},
        )
        assert response.status_code == 422


class TestInternalRoutes:
    def test_tick_requires_service_key(self, anon_client):
        response = anon_client.post("/api/v1/internal/notifications/tick")
        assert response.status_code == 401

    def test_tick_rejects_wrong_key(self, anon_client, service_key):
        response = anon_client.post(
            "/api/v1/internal/notifications/tick", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    def test_tick_sends_due_reminders(self, anon_client, db_session, service_key, user_id, gateway):
        save_settings(db_session, user_id, enabled=True)
        add_subscription(db_session, user_id, "https://push.example.com/phone")

        response = anon_client.post(
            "/api/v1/internal/notifications/tick",
            json={"now": "2025-12-18T12:00:00Z"},
            headers=service_key,
        )

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["main"] == {"sent": 1, "skipped": 0, "failed": 0}
        assert len(gateway.calls) == 1
        db_session.expire_all()
        log = db_session.query(NotificationLog).one()
        assert log.type == NotificationType.MAIN_REMINDER

    def test_tick_runs_on_its_own_event_loop(self, anon_client, service_key):
        loops = []

        async def _fake_run_tick(db, now, gateway, **kwargs):
            loops.append(asyncio.get_running_loop())
            return TickSummary(timestamp=now)

        with patch("journal_reminders.notifications.routes.run_tick", _fake_run_tick):
            response = anon_client.post("/api/v1/internal/notifications/tick", headers=service_key)

        assert response.status_code == 200
        assert response.json()["stats"]["main"] == {"sent": 0, "skipped": 0, "failed": 0}
        # the serving loop is still running; the tick's private loop is already closed
        assert len(loops) == 1
        assert loops[0].is_closed()

    def test_prune_logs(self, anon_client, db_session, service_key):
        response = anon_client.post("/api/v1/internal/notifications/prune-logs", headers=service_key)
        assert response.status_code == 200
        assert response.json() == {"success": True, "deleted": 0}

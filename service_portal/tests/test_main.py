"""
Route-level tests for the portal service.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from service_portal.app.adapters.search_client import SearchSnippet
from service_portal.app.auth.admin_session import AdminAuthenticator
from service_portal.app.domain.models import isoformat_utc
from service_portal.app.main import PortalService
from service_portal.app.ratelimit.fixed_window import FixedWindowRateLimiter
from shared.config import get_config
from shared.errors import AuthenticationError, ProviderError, StoreReadError, StoreWriteError
from shared.logging import client_id_var

from conftest import InMemoryTableStore

ADMIN_KEY = "admin-key"
ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_KEY}"}


def _provider(name, provider_id, result=None, error=None):
    provider = MagicMock()
    provider.name = name
    provider.provider_id = provider_id
    provider.configured = True
    provider.complete = AsyncMock(return_value=result, side_effect=error)
    return provider


@pytest.fixture
def retriever():
    retriever = MagicMock()
    retriever.configured = True
    retriever.retrieve = AsyncMock(
        return_value=[SearchSnippet("Library", "https://ifheindia.org/library", "Open 8am to 10pm")]
    )
    return retriever


@pytest.fixture
def providers():
    return [
        _provider("gemini", "gemini-1.5-flash", error=ProviderError("gemini", "HTTP 500")),
        _provider("groq", "deepseek-r1-distill-llama-70b", result="The library opens at **8am**."),
    ]


@pytest.fixture
def limiter():
    return FixedWindowRateLimiter()


@pytest.fixture
def service(store, retriever, providers, limiter, clock):
    return PortalService(
        get_config("portal", 8080, google_sheet_id="sheet-1"),
        store=store,
        retriever=retriever,
        providers=providers,
        rate_limiter=limiter,
        authenticator=AdminAuthenticator(ADMIN_KEY, "session-secret"),
        clock=clock,
    )


@pytest.fixture
def client(service):
    return TestClient(service.app)


class TestServiceRoutes:
    """Test cases for health and metrics routes."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "portal"
        assert body["dependencies"]["store"] == "configured"
        assert body["dependencies"]["providers"] == {"gemini": "configured", "groq": "configured"}

    def test_api_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["timestamp"] == "2024-05-01T09:00:00.000Z"

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_log_carries_client_id(self, service, client):
        """The per-request log line is written while the client id is still bound."""
        bound = {}

        def record(event, **fields):
            if event == "HTTP request":
                bound["client_id"] = client_id_var.get()
                bound["request_id"] = fields["request_id"]

        service.logger = MagicMock()
        service.logger.info.side_effect = record

        headers = {"X-Real-IP": "2.2.2.2", "X-Request-ID": "req-7"}
        client.post("/api/chat", json={"question": "Library?"}, headers=headers)

        assert bound == {"client_id": "2.2.2.2", "request_id": "req-7"}

    def test_metrics(self, client):
        client.get("/api/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert b"http_requests_total" in response.content


class TestChatRoutes:
    """Test cases for the chat endpoints."""

    def test_chat_answer_from_second_provider(self, client, store):
        response = client.post("/api/chat", json={"question": "When does the library open?"})

        assert response.status_code == 200
        body = response.json()
        assert body["model_used"] == "deepseek-r1-distill-llama-70b"
        assert body["html"].startswith("The library opens at <strong>8am</strong>.")
        assert "https://ifheindia.org/library" in body["html"]
        assert body["source_links"] == ["https://ifheindia.org/library"]
        assert response.headers["X-RateLimit-Limit"] == "5"

        [(table, row)] = store.appends
        assert table == "chat_logs"
        assert row[3] == "When does the library open?"
        assert row[4] == "deepseek-r1-distill-llama-70b"
        assert row[5] == "success"

    def test_chat_soft_fails_when_all_providers_fail(self, service, client, store):
        for provider in service.providers:
            provider.complete = AsyncMock(side_effect=ProviderError(provider.name))

        response = client.post("/api/chat", json={"question": "Hostel fees?"})

        assert response.status_code == 200
        body = response.json()
        assert body["model_used"] == "none"
        assert "unable to process your question" in body["html"]
        assert "<strong>IFHE Hyderabad Contact:</strong>" in body["html"]
        row = store.appends[-1][1]
        assert row[5] == "error"
        assert row[9] == "all providers failed"

    def test_chat_logging_failure_does_not_fail_request(self, client, store):
        store.fail_writes = StoreWriteError()

        response = client.post("/api/chat", json={"question": "Library?"})

        assert response.status_code == 200

    def test_question_too_long(self, client):
        response = client.post("/api/chat", json={"question": "x" * 501})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["fields"]["question"] == "Question too long (max 500 characters)"

    def test_rate_limited(self, service, client):
        service.rate_limiter.default_limits["chat"] = 1
        client.post("/api/chat", json={"question": "one"})

        response = client.post("/api/chat", json={"question": "two"})

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMIT_ERROR"
        assert int(response.headers["Retry-After"]) >= 1

    def test_feedback(self, client, store):
        response = client.post("/api/chat/feedback", json={"rating": 4, "question": "Library?"})

        assert response.status_code == 200
        row = store.appends[-1][1]
        assert row[3] == "FEEDBACK (4/5): Library?"
        assert row[4] == "feedback"


class TestEventAndNoticeRoutes:
    """Test cases for event and notice endpoints."""

    def test_admin_routes_require_auth(self, client):
        assert client.get("/api/events/admin/all").status_code == 401
        assert client.post("/api/notices/admin", json={}).status_code == 401
        assert client.get("/api/events/admin/all", headers={"Authorization": "Bearer wrong"}).status_code == 401

    def test_create_list_and_hide_event(self, client, now):
        payload = {
            "title": "Tech Fest",
            "description": "<p>Robots</p><script>x()</script>",
            "date_iso": isoformat_utc(now + timedelta(days=3)),
            "location": "Main Ground",
        }

        created = client.post("/api/events/admin", json=payload, headers=ADMIN_HEADERS)
        assert created.status_code == 200
        event = created.json()["event"]
        assert event["description"] == "<p>Robots</p>"

        listed = client.get("/api/events").json()
        assert [item["id"] for item in listed["events"]] == [event["id"]]
        assert client.get(f"/api/events/{event['id']}").status_code == 200

        hidden = client.delete(f"/api/events/admin/{event['id']}", headers=ADMIN_HEADERS)
        assert hidden.status_code == 200
        assert client.get("/api/events").json()["count"] == 0
        assert client.get(f"/api/events/{event['id']}").status_code == 404

    def test_event_in_past_rejected(self, client, now):
        payload = {
            "title": "Old",
            "description": "d",
            "date_iso": isoformat_utc(now - timedelta(days=1)),
            "location": "L",
        }

        response = client.post("/api/events/admin", json=payload, headers=ADMIN_HEADERS)

        assert response.status_code == 400
        assert response.json()["details"]["fields"] == {"date_iso": "Event date must be in the future"}

    def test_notices_and_categories(self, client):
        for category in ("Academic", "Academic", "Sports"):
            response = client.post(
                "/api/notices/admin",
                json={"title": "T", "body_html": "<p>B</p>", "category": category},
                headers=ADMIN_HEADERS,
            )
            assert response.status_code == 200

        assert client.get("/api/notices").json()["count"] == 3
        categories = client.get("/api/notices/categories").json()["categories"]
        assert {"name": "Academic", "count": 2} in categories
        assert client.get("/api/notices/category/sports").json()["count"] == 1

    def test_store_authentication_failure_is_reported(self, client, store):
        store.fail_reads = AuthenticationError("Token exchange rejected", "Invalid JWT")

        response = client.get("/api/events")

        assert response.status_code == 500
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_invalid_notice_category(self, client):
        response = client.post(
            "/api/notices/admin",
            json={"title": "T", "body_html": "B", "category": "Rumours"},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 400
        assert "category" in response.json()["details"]["fields"]


class TestRegistrationRoutes:
    """Test cases for registration endpoints."""

    @pytest.fixture
    def event_id(self, store, now):
        store.tables["events"].append(
            ["e1", "Workshop", "d", isoformat_utc(now + timedelta(hours=2)), "Lab", "", "TRUE", ""]
        )
        return "e1"

    def test_register_then_duplicate(self, client, event_id):
        payload = {"event_id": event_id, "name": "Asha", "email": "asha@example.com"}

        first = client.post("/api/register", json=payload)
        second = client.post("/api/register", json=payload)

        assert first.status_code == 200
        assert first.json()["registration"]["event_title"] == "Workshop"
        assert second.status_code == 409
        assert second.json()["error"] == "You are already registered for this event"

        verified = client.get(f"/api/register/verify/asha@example.com/{event_id}").json()
        assert verified["registered"] is True

    def test_register_unknown_event(self, client):
        payload = {"event_id": "nope", "name": "Asha", "email": "asha@example.com"}
        assert client.post("/api/register", json=payload).status_code == 404

    def test_register_invalid_email(self, client, event_id):
        payload = {"event_id": event_id, "name": "Asha", "email": "asha"}

        response = client.post("/api/register", json=payload)

        assert response.status_code == 400
        assert response.json()["details"]["fields"] == {"email": "Invalid email format"}


class TestAdminRoutes:
    """Test cases for admin endpoints."""

    def test_login_issues_usable_token(self, client):
        response = client.post("/api/admin/login", json={"api_key": ADMIN_KEY})

        assert response.status_code == 200
        token = response.json()["token"]
        dashboard = client.get("/api/admin/dashboard", headers={"Authorization": f"Bearer {token}"})
        assert dashboard.status_code == 200
        assert dashboard.json()["success"] is True

    def test_login_rejects_wrong_key(self, client):
        response = client.post("/api/admin/login", json={"api_key": "guess"})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid API key"

    def test_init_tables(self):
        empty = InMemoryTableStore()
        service = PortalService(
            get_config("portal", 8080),
            store=empty,
            retriever=MagicMock(configured=False),
            providers=[],
            authenticator=AdminAuthenticator(ADMIN_KEY, "session-secret"),
        )

        response = TestClient(service.app).post("/api/admin/init-tables", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["tables"] == {
            "events": True,
            "notices": True,
            "registrations": True,
            "chat_logs": True,
        }

    def test_system_status_reports_store_failure(self, client, store):
        store.fail_reads = StoreReadError()

        body = client.get("/api/admin/system-status", headers=ADMIN_HEADERS).json()

        assert body["overall_status"] == "degraded"
        assert body["checks"][0]["status"] == "error"
        assert body["checks"][1] == {"service": "gemini API", "status": "configured", "message": "API key configured"}

    def test_chat_logs_page(self, client):
        client.post("/api/chat", json={"question": "Library?"})

        body = client.get("/api/admin/chat-logs?limit=10", headers=ADMIN_HEADERS).json()

        assert body["pagination"]["total"] == 1
        assert body["logs"][0]["question"] == "Library?"

"""Tests for API routes."""
import httpx
import pytest
from unittest.mock import AsyncMock, patch

from chainchat.api.deps import get_chat_handler
from chainchat.config import Settings, settings
from chainchat.main import app
from chainchat.services.chat_handler import ChatHandler
from chainchat.services.memory_store import InMemoryConversationStore
from tests.fakes import FakeModelClient, make_orchestrator


@pytest.fixture
def store():
    store = InMemoryConversationStore()
    store.add_user("ada@example.com")
    return store


@pytest.fixture
def hosted():
    return FakeModelClient("Refined answer.")


@pytest.fixture
def client(store, hosted):
    from fastapi.testclient import TestClient

    handler = ChatHandler(
        store,
        make_orchestrator(scraped=FakeModelClient("Scira answer [2]."), hosted=hosted),
        settings=Settings(together_api_key="test-key", _env_file=None),
    )
    app.dependency_overrides[get_chat_handler] = lambda: handler
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health_warns_without_key(client):
    with patch.object(settings, "together_api_key", ""):
        response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "warning"
    assert data["service"] == "chainchat"
    assert data["missing"] == ["TOGETHER_API_KEY"]


def test_health_reports_invalid_key(client):
    with patch.object(settings, "together_api_key", "bad"), \
         patch("chainchat.api.routes.health.probe_hosted_api", new=AsyncMock(return_value=401)):
        response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "error"


def test_health_success(client):
    with patch.object(settings, "together_api_key", "good"), \
         patch("chainchat.api.routes.health.probe_hosted_api", new=AsyncMock(return_value=200)):
        data = client.get("/api/health").json()
    assert data["status"] == "success"
    assert data["services"]["together"] == "connected"


def test_health_ignores_probe_connectivity_errors(client):
    probe = AsyncMock(side_effect=httpx.ConnectError("unreachable"))
    with patch.object(settings, "together_api_key", "good"), \
         patch("chainchat.api.routes.health.probe_hosted_api", new=probe):
        response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "success"


def test_list_models(client):
    response = client.get("/api/models")
    assert response.status_code == 200
    model_ids = [m["id"] for m in response.json()["models"]]
    assert "scira" in model_ids
    assert "deepseek" in model_ids
    assert "chained" in model_ids
    assert "llama3.2" in model_ids


def test_chained_chat_end_to_end(client, hosted):
    response = client.post(
        "/api/ai-chat",
        json={"query": "Explain quantum tunneling", "model": "chained", "userEmail": "ada@example.com"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["finalOutput"] == "Refined answer."
    assert data["totalTime"] >= 0
    assert [r["model"] for r in data["responses"]] == ["scira", "deepseek-r1"]
    assert data["responses"][0]["response"] == "Scira answer."
    assert data["conversationId"]
    assert len(data["messages"]) == 2
    assert "Scira answer." in hosted.calls[0][0]


def test_validation_error_payload(client):
    response = client.post("/api/ai-chat", json={"query": "hi", "model": "gpt-4"})
    assert response.status_code == 400
    assert response.json() == {"error": "Valid model selection is required"}


def test_unknown_user_is_404(client):
    response = client.post(
        "/api/ai-chat", json={"query": "hi", "model": "scira", "userEmail": "nobody@example.com"}
    )
    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


def test_processing_failure_is_500_with_details(client, hosted):
    hosted.error = RuntimeError("socket closed")
    response = client.post("/api/ai-chat", json={"query": "hi", "model": "deepseek"})
    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
    assert response.json()["details"] == "socket closed"


def test_malformed_body_is_400(client):
    response = client.post("/api/ai-chat", content="not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_missing_key_is_500():
    from fastapi.testclient import TestClient

    handler = ChatHandler(
        InMemoryConversationStore(),
        make_orchestrator(),
        settings=Settings(together_api_key="", _env_file=None),
    )
    app.dependency_overrides[get_chat_handler] = lambda: handler
    try:
        with TestClient(app) as test_client:
            response = test_client.post("/api/ai-chat", json={"query": "hi", "model": "scira"})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 500
    assert response.json() == {"error": "TOGETHER API key not configured"}

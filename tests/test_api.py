import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models import FakeListChatModel

from pbirag.config.settings import settings
from pbirag.src.core.errors import SearchError
from pbirag.src.core.rag_engine import AnswerGenerator, QueryRewriter
from pbirag.src.database.vector_store import EmbeddingClient
from pbirag.src.main import create_app

from tests.fakes import SlowEmbedder, StaticSearchClient

API = settings.API_PREFIX


class ExplodingRewriter:
    async def rewrite(self, question, history, timeout=None):
        raise RuntimeError("unexpected bug")


@pytest.fixture
def rag(make_rag):
    return make_rag(
        rewriter=QueryRewriter(FakeListChatModel(responses=["What is DAX in Power BI?"])),
        generator=AnswerGenerator(FakeListChatModel(responses=["DAX is a formula language used for calculated columns."])),
    )


@pytest.fixture
def client(rag):
    with TestClient(create_app(rag), raise_server_exceptions=False) as test_client:
        yield test_client


def test_health(client):
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["message"] == "PowerBI RAG Server is running"
    assert body["timestamp"]


def test_chat_success(client, rag):
    response = client.post(f"{API}/chat", json={"question": "What is DAX?", "sessionId": "abc"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "response": "DAX is a formula language used for calculated columns.",
        "transformedQuery": "What is DAX in Power BI?",
    }
    assert [t.role for t in rag.history.get_or_create("abc")] == ["user", "model"]


def test_chat_without_session_id_uses_default(client, rag):
    client.post(f"{API}/chat", json={"question": "What is DAX?"})
    assert len(rag.history.get_or_create(settings.DEFAULT_SESSION_ID)) == 2


@pytest.mark.parametrize("body", [{}, {"question": ""}, {"question": "   "}, {"question": 123}, {"sessionId": "abc"}])
def test_chat_rejects_missing_or_invalid_question(client, rag, body):
    response = client.post(f"{API}/chat", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"]
    assert len(rag.history) == 0


def test_chat_rejects_malformed_json(client, rag):
    response = client.post(f"{API}/chat", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_dependency_failure_is_reported_inline(make_rag):
    rag = make_rag(search_client=StaticSearchClient(error=SearchError("index offline")))
    with TestClient(create_app(rag)) as client:
        response = client.post(f"{API}/chat", json={"question": "What is DAX?"})

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Vector database unavailable"}


def test_unexpected_error_becomes_500(make_rag):
    rag = make_rag(rewriter=ExplodingRewriter())
    with TestClient(create_app(rag), raise_server_exceptions=False) as client:
        response = client.post(f"{API}/chat", json={"question": "What is DAX?"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


def test_clear_history(client, rag):
    client.post(f"{API}/chat", json={"question": "What is DAX?", "sessionId": "abc"})

    response = client.post(f"{API}/clear-history", json={"sessionId": "abc"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "History cleared successfully"}
    assert "abc" not in rag.history


@pytest.mark.parametrize("body", [{"sessionId": "never-used"}, {}])
def test_clear_history_is_idempotent(client, body):
    for _ in range(2):
        response = client.post(f"{API}/clear-history", json=body)
        assert response.status_code == 200
        assert response.json()["success"] is True


def test_unknown_route_returns_json_404(client):
    response = client.get(f"{API}/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


def test_request_timeout_header_must_be_positive(client):
    response = client.post(f"{API}/chat", json={"question": "What is DAX?"}, headers={"X-Request-Timeout": "-1"})
    assert response.status_code == 400


def test_cors_allows_frontend_origin(client):
    response = client.options(
        f"{API}/chat",
        headers={"Origin": settings.FRONTEND_URL, "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == settings.FRONTEND_URL


def test_non_string_session_id_falls_back_to_default(client, rag):
    response = client.post(f"{API}/chat", json={"question": "What is DAX?", "sessionId": 123})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(rag.history.get_or_create(settings.DEFAULT_SESSION_ID)) == 2
    assert 123 not in rag.history


@pytest.mark.parametrize("session_id", [123, None, ["abc"], {"id": "abc"}])
def test_clear_history_accepts_any_session_id(client, session_id):
    response = client.post(f"{API}/clear-history", json={"sessionId": session_id})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "History cleared successfully"}


def test_request_timeout_header_bounds_external_calls(make_rag):
    rag = make_rag(embedding_client=EmbeddingClient(SlowEmbedder()))
    with TestClient(create_app(rag)) as client:
        response = client.post(f"{API}/chat", json={"question": "What is DAX?", "sessionId": "slow"}, headers={"X-Request-Timeout": "0.1"})

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Embedding service unavailable"}
    assert rag.history.get_or_create("slow") == []

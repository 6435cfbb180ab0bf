"""Tests for the FastAPI application helpers."""

from __future__ import annotations

import json
from uuid import uuid4

import chromadb
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from minerva.api.app import AppDependencies, create_app
from minerva.config import Settings
from minerva.embeddings.service import EmbeddingConfig, HashEmbeddingBackend
from minerva.embeddings.store import ChromaReviewStore
from minerva.retrieval.service import ReviewRetriever
from minerva.services.chat import ChatService
from minerva.services.generation import TemplateGenerator
from minerva.services.ratelimit import FixedWindowRateLimiter
from minerva.services.relay import ResponseRelay
from minerva.ui.parser import process_content

REVIEW = {
    "post_id": "501",
    "title": "Book X",
    "author_name": "Author Y",
    "content": "Book X is a warm, witty friends-to-lovers story.",
    "grade": "A-",
    "sensuality": "Warm",
    "book_types": ["Contemporary Romance"],
    "asin": "B00TEST123",
}


def create_test_client(*, config_check=None, rate_limit: int = 1000, generator=None) -> TestClient:
    store = ChromaReviewStore(
        HashEmbeddingBackend(EmbeddingConfig(dim=16)),
        collection_name=f"api-{uuid4().hex[:8]}",
        client=chromadb.EphemeralClient(),
    )
    deps = AppDependencies(
        store=store,
        chat_service=ChatService(ReviewRetriever(store), generator or TemplateGenerator(), config_check=config_check),
        relay=ResponseRelay(timeout_seconds=5, update_interval=0.0),
        rate_limiter=FixedWindowRateLimiter(rate_limit, 60),
    )
    settings = Settings(_env_file=None, environment="test", generator_backend="template")
    app = create_app(settings=settings, dependencies=deps)
    return TestClient(app)


def parse_events(body: str) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []
    for block in body.split("\n\n"):
        lines = [line for line in block.split("\n") if line and not line.startswith(":")]
        if not lines:
            continue
        fields = dict(line.split(": ", 1) for line in lines)
        events.append((fields["event"], json.loads(fields["data"])))
    return events


def _chat(client: TestClient, content: str, **extra):
    return client.post("/api/chat", json={"messages": [{"role": "user", "content": content}], **extra})


def test_chat_streams_updates_then_single_done():
    client = create_test_client()
    assert client.post("/reviews", json=REVIEW).status_code == 201

    response = _chat(client, "Tell me about Book X by Author Y")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.startswith(": heartbeat")
    events = parse_events(response.text)
    kinds = [kind for kind, _ in events]
    assert kinds.count("done") == 1
    assert kinds[-1] == "done"
    assert events[-1][1] == {"state": "completed"}
    final_text = [data["text"] for kind, data in events if kind == "update"][-1]
    processed = process_content(final_text)
    assert [(book.title, book.grade) for book in processed.books] == [("Book X", "A-")]


def test_missing_configuration_is_reported():
    settings = Settings(_env_file=None, generator_backend="openai", openai_api_key=None, chroma_host=None)
    client = create_test_client(config_check=settings.validate_credentials)

    response = _chat(client, "hi")

    assert response.status_code == 500
    body = response.json()
    assert body["type"] == "configuration"
    assert "MINERVA_OPENAI_API_KEY" in body["details"]
    assert body["correlation_id"] == response.headers["X-Correlation-ID"]


def test_invalid_conversations_are_rejected():
    client = create_test_client()
    response = client.post("/api/chat", json={"messages": [{"role": "assistant", "content": "hello"}]})
    assert response.status_code == 400
    assert response.json()["type"] == "validation"
    assert client.post("/api/chat", json={"messages": []}).status_code == 422


def test_rate_limit_per_user():
    client = create_test_client(rate_limit=1)
    assert _chat(client, "hi", user_id="reader-1").status_code == 200
    limited = _chat(client, "hi again", user_id="reader-1")
    assert limited.status_code == 429
    assert limited.json()["type"] == "rate_limit"
    assert int(limited.headers["Retry-After"]) >= 1
    assert _chat(client, "hi", user_id="reader-2").status_code == 200


def test_review_management_endpoints():
    client = create_test_client()
    created = client.post("/reviews", json=REVIEW)
    assert created.json() == {"post_id": "501", "document_count": 1}
    assert client.post("/reviews", json={**REVIEW, "grade": "excellent"}).status_code == 422

    stats = client.get("/index/stats").json()
    assert stats["total_reviews"] == 1
    assert stats["index_name"].startswith("api-")

    assert client.delete("/reviews/501").status_code == 204
    assert client.delete("/reviews/501").status_code == 404


def test_health_metrics_and_correlation_id():
    client = create_test_client()
    assert client.get("/healthz").json()["status"] == "ok"
    assert client.head("/healthz").status_code == 200
    assert client.get("/livez").json() == {"status": "alive"}
    _chat(client, "hello")
    metrics = client.get("/metrics")
    assert "minerva_relay_outcome_total" in metrics.text
    response = client.get("/livez", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Correlation-ID"] == "req-123"
    forwarded = client.get("/livez", headers={"X-Correlation-ID": "cid-9", "X-Request-ID": "req-123"})
    assert forwarded.headers["X-Correlation-ID"] == "cid-9"


class PlainGenerator:
    async def stream(self, prompt, *, books=()):
        yield "No structured block here."


def test_unstructured_answer_logs_validation_warning():
    client = create_test_client(generator=PlainGenerator())
    with capture_logs() as logs:
        response = _chat(client, "Recommend something cozy")
    assert response.status_code == 200
    assert parse_events(response.text)[-1] == ("done", {"state": "completed"})
    warnings = [entry for entry in logs if entry["event"] == "response.validation_failed"]
    assert len(warnings) == 1
    assert warnings[0]["detail"].startswith("⚠️ Response validation failed: Missing book-data structure")

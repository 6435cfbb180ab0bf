from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from minerva.api.app import create_app
from minerva.config import Settings


def make_app() -> TestClient:
    settings = Settings(
        _env_file=None,
        environment="test",
        generator_backend="template",
        embedding_provider="hash",
        chroma_host=None,
        index_name=f"e2e-{uuid4().hex[:8]}",
        rate_limit_requests=1000,
    )
    app = create_app(settings=settings)
    return TestClient(app)


def test_health_index_and_chat_flow():
    client = make_app()
    assert client.get("/healthz").status_code == 200
    assert client.get("/livez").status_code == 200

    review = {
        "post_id": "9001",
        "title": "The Wallflower Wager",
        "author_name": "Tessa Dare",
        "content": "A delightful Regency romp with a menagerie of animals.",
        "grade": "B+",
        "sensuality": "Warm",
        "book_types": ["European Historical"],
    }
    r = client.post("/reviews", json=review)
    assert r.status_code == 201, r.text

    stats = client.get("/index/stats").json()
    assert stats["total_reviews"] == 1

    r = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "Recommend something like The Wallflower Wager"}]},
    )
    assert r.status_code == 200, r.text
    assert "The Wallflower Wager" in r.text
    assert r.text.rstrip().endswith('data: {"state": "completed"}')

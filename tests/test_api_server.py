import logging

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEmbedClient
from server.api_server import app, init_services
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.helper.HelperConfig import HelperConfig

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def embedder():
    return FakeEmbedClient(vectors={
        "python": [1.0, 0.0],
        "tell me about python": [1.0, 0.0],
    })


@pytest.fixture
def client(monkeypatch, embedder):
    monkeypatch.setenv("APP_API_KEY", API_KEY)
    helper_config = HelperConfig(logger=logging.getLogger("test"))
    init_services(app, helper_config, StoreClientMemory(helper_config=helper_config), embedder)
    # no context manager: the lifespan would boot real backends
    return TestClient(app)


def store(client, content, embedding, **metadata):
    metadata.setdefault("type", "file")
    response = client.post(
        "/memory/vectors",
        json={"content": content, "embedding": embedding, "metadata": metadata},
        headers=HEADERS,
    )
    assert response.status_code == 200, response.text
    return response.json()["id"]


def test_wrong_api_key_is_rejected(client):
    response = client.get("/memory/stats", headers={"X-API-Key": "nope"})
    assert response.status_code == 401


def test_store_and_semantic_search(client):
    python_id = store(client, "python guide", [1.0, 0.0], title="Guide")
    store(client, "cooking pasta", [0.0, 1.0])

    response = client.post("/search/semantic", json={"embedding": [1.0, 0.1]}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["results"][0]["document"]["id"] == python_id

    # query text goes through the embedding provider
    response = client.post("/search/semantic", json={"query": "python"}, headers=HEADERS)
    assert [r["document"]["id"] for r in response.json()["results"]] == [python_id]


def test_semantic_search_needs_query_or_embedding(client):
    response = client.post("/search/semantic", json={"limit": 3}, headers=HEADERS)
    assert response.status_code == 400


def test_embedding_failure_is_bad_gateway(client, embedder):
    embedder.failing.add("unlucky")
    response = client.post("/search/semantic", json={"query": "unlucky"}, headers=HEADERS)
    assert response.status_code == 502


def test_quota_exceeded_is_conflict(client, monkeypatch):
    monkeypatch.setenv("EMBEDDINGS_MAX_EMBEDDINGS_PER_FILE", "1")
    store(client, "first", [1.0, 0.0], file_id="f")
    response = client.post(
        "/memory/vectors",
        json={"content": "second", "embedding": [0.0, 1.0], "metadata": {"type": "file", "file_id": "f"}},
        headers=HEADERS,
    )
    assert response.status_code == 409
    assert "Maximum embeddings per file (1)" in response.json()["detail"]


def test_keyword_and_hybrid_search(client):
    python_id = store(client, "python guide", [0.0, 1.0])
    pasta_id = store(client, "cooking pasta", [0.9, 0.43589])

    response = client.post("/search/keyword", json={"query": "pasta"}, headers=HEADERS)
    assert [r["id"] for r in response.json()["results"]] == [pasta_id]

    response = client.post(
        "/search/hybrid",
        json={"query": "python", "keyword_weight": 0.5, "semantic_weight": 0.5},
        headers=HEADERS,
    )
    assert [r["document"]["id"] for r in response.json()["results"]] == [python_id, pasta_id]


def test_context_route(client):
    store(client, "python is a programming language", [1.0, 0.0], title="Python", file_id="wiki")
    store(client, "unrelated", [1.0, 0.0], title="Other", file_id="other")
    response = client.post(
        "/search/context",
        json={"query": "tell me about python", "file_ids": ["wiki"]},
        headers=HEADERS,
    )
    assert response.json() == {"context": "Source: Python\npython is a programming language"}


def test_chat_and_context_listing(client):
    first = client.post(
        "/memory/chat",
        json={"content": "hi", "role": "user", "session_id": "s1", "message_id": "m1"},
        headers=HEADERS,
    ).json()["id"]
    second = client.post(
        "/memory/chat",
        json={"content": "hello!", "role": "assistant", "session_id": "s1", "message_id": "m2"},
        headers=HEADERS,
    ).json()["id"]
    response = client.get("/memory/vectors", params={"session_id": "s1"}, headers=HEADERS)
    assert [d["id"] for d in response.json()] == [first, second]


def test_ingest_route(client):
    response = client.post(
        "/memory/ingest",
        json={
            "text": "First paragraph about storage.\n\nSecond paragraph about search.",
            "metadata": {"type": "file", "file_id": "doc"},
            "chunk_size": 8,
            "chunk_overlap": 0,
        },
        headers=HEADERS,
    )
    assert response.status_code == 200
    report = response.json()
    assert report["total_chunks"] == 2
    assert len(report["stored_ids"]) == 2

    bad = client.post(
        "/memory/ingest",
        json={"text": "text", "metadata": {"type": "file"}, "chunk_size": 5, "chunk_overlap": 5},
        headers=HEADERS,
    )
    assert bad.status_code == 400


def test_delete_stats_and_index_routes(client):
    store(client, "a", [1.0, 0.0], type="chat")
    store(client, "b", [0.0, 1.0], file_id="f")
    store(client, "c", [1.0, 1.0], file_id="g")

    stats = client.get("/memory/stats", headers=HEADERS).json()
    assert stats["total_vectors"] == 3
    assert stats["counts_by_type"] == {"chat": 1, "file": 2}

    build = client.post("/index/build", headers=HEADERS).json()
    assert build["started"] is True
    assert build["vector_index"]["num_elements"] == 3

    assert client.delete("/memory/vectors", params={"file_id": "f"}, headers=HEADERS).json() == {"deleted": 1}
    assert client.get("/index/stats", headers=HEADERS).json()["keyword_index"]["document_count"] == 2

    cleared = client.delete("/index", headers=HEADERS).json()
    assert cleared["vector_index"]["num_elements"] == 0

    assert client.delete("/memory", params={"type": "chat"}, headers=HEADERS).json() == {"deleted": 1}
    assert client.delete("/memory", headers=HEADERS).json() == {"deleted": 1}

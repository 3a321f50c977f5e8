import asyncio
import json

import httpx
import pytest

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.errors import InvalidConfigError


def run(coro):
    return asyncio.run(coro)


def make_client(helper_config, handler) -> EmbedClientOllama:
    client = EmbedClientOllama(helper_config=helper_config)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def vector_for(text: str) -> list[float]:
    return [float(len(text)), 1.0]


def embed_handler(requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append((request.url.path, body))
        return httpx.Response(200, json={"embeddings": [vector_for(t) for t in body["input"]]})
    return handler


def test_payload_and_result(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_OLLAMA_BASE_URL", "http://ollama:11434")
    monkeypatch.setenv("EMBED_MODEL", "nomic-embed-text")
    requests = []
    client = make_client(helper_config, embed_handler(requests))

    result = run(client.generate_embedding("hello"))
    assert result.embedding == [5.0, 1.0]
    assert result.model == "nomic-embed-text"
    assert requests == [("/api/embed", {"model": "nomic-embed-text", "input": ["hello"], "truncate": True})]


def test_http_error_status_is_returned_as_error(helper_config):
    client = make_client(helper_config, lambda request: httpx.Response(500, text="boom"))
    result = run(client.generate_embedding("hello"))
    assert result.code == "HTTP_500"


def test_malformed_response_is_invalid_response(helper_config):
    client = make_client(helper_config, lambda request: httpx.Response(200, json={"unexpected": True}))
    result = run(client.generate_embedding("hello"))
    assert result.code == "INVALID_RESPONSE"


def test_unreachable_backend_is_network_error(helper_config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(helper_config, handler)
    result = run(client.generate_embedding("hello"))
    assert result.code == "NETWORK_ERROR"
    assert not run(client.do_healthcheck())


def test_embeddings_are_cached_by_content(helper_config):
    requests = []
    client = make_client(helper_config, embed_handler(requests))
    first = run(client.generate_embedding("same text"))
    second = run(client.generate_embedding("same text"))
    assert first.embedding == second.embedding
    assert len(requests) == 1

    # another model is another cache entry
    run(client.generate_embedding("same text", model="other-model"))
    assert len(requests) == 2


def test_cache_can_be_disabled(helper_config, monkeypatch):
    monkeypatch.setenv("EMBEDDINGS_ENABLE_CACHING", "false")
    requests = []
    client = make_client(helper_config, embed_handler(requests))
    run(client.generate_embedding("same text"))
    run(client.generate_embedding("same text"))
    assert len(requests) == 2


def test_cache_entries_expire_after_a_day(helper_config):
    requests = []
    client = make_client(helper_config, embed_handler(requests))
    now = [0]
    client._clock = lambda: now[0]
    run(client.generate_embedding("text"))
    now[0] = 24 * 60 * 60 * 1000 - 1
    run(client.generate_embedding("text"))
    assert len(requests) == 1
    now[0] = 24 * 60 * 60 * 1000
    run(client.generate_embedding("text"))
    assert len(requests) == 2


def test_failures_are_not_cached(helper_config):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"embeddings": [[1.0, 2.0]]})

    client = make_client(helper_config, handler)
    assert run(client.generate_embedding("retry me")).code == "HTTP_503"
    assert run(client.generate_embedding("retry me")).embedding == [1.0, 2.0]


def test_batch_keeps_order_and_reports_progress(helper_config, monkeypatch):
    monkeypatch.setenv("EMBEDDINGS_BATCH_SIZE", "2")
    requests = []
    client = make_client(helper_config, embed_handler(requests))
    progress = []
    texts = ["a", "bbb", "cc"]
    results = run(client.generate_embeddings_batch(texts, on_progress=lambda done, total: progress.append((done, total))))
    assert [r.embedding for r in results] == [vector_for(t) for t in texts]
    assert progress == [(2, 3), (3, 3)]


def test_batch_reports_individual_failures(helper_config):
    def handler(request):
        body = json.loads(request.content)
        if body["input"] == ["bad"]:
            return httpx.Response(400)
        return httpx.Response(200, json={"embeddings": [[1.0]]})

    client = make_client(helper_config, handler)
    results = run(client.generate_embeddings_batch(["good", "bad", "fine"]))
    assert [getattr(r, "code", None) for r in results] == [None, "HTTP_400", None]


def test_vector_size_from_model_details(helper_config):
    def handler(request):
        assert request.url.path == "/api/show"
        return httpx.Response(200, json={"model_info": {"bert.embedding_length": 1024}})

    client = make_client(helper_config, handler)
    assert run(client.do_fetch_embedding_dimension()) == 1024


def test_requests_require_boot(helper_config):
    client = EmbedClientOllama(helper_config=helper_config)
    with pytest.raises(RuntimeError):
        run(client.do_embed("hello"))


def test_manager_selects_ollama(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "ollama")
    client = EmbedClientManager(helper_config=helper_config).get_client()
    assert isinstance(client, EmbedClientOllama)
    assert client.get_engine_name() == "ollama"


def test_keep_alive_and_truncate_settings(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_OLLAMA_KEEP_ALIVE", "10m")
    monkeypatch.setenv("EMBED_OLLAMA_TRUNCATE", "false")
    client = EmbedClientOllama(helper_config=helper_config)
    assert client.get_embed_payload(["x"], "m") == {"model": "m", "input": ["x"], "truncate": False, "keep_alive": "10m"}


def test_non_numeric_embeddings_are_invalid(helper_config):
    client = make_client(helper_config, lambda request: httpx.Response(200, json={"embeddings": [["a", "b"]]}))
    assert run(client.generate_embedding("hello")).code == "INVALID_RESPONSE"


def test_misconfigured_client_fails_on_creation(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_OLLAMA_TRUNCATE", "sometimes")
    with pytest.raises(InvalidConfigError):
        EmbedClientOllama(helper_config=helper_config)

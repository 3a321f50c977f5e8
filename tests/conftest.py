import asyncio
import hashlib
import logging
import os
from dataclasses import dataclass

import pytest

from services.retrieval.RetrievalService import RetrievalService
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.embeddings.KeywordIndex import KeywordIndex
from shared.embeddings.SearchCache import SearchCache
from shared.embeddings.VectorIndex import VectorIndex
from shared.embeddings.VectorStore import VectorStore
from shared.helper.HelperConfig import HelperConfig
from shared.models.embedding import EmbeddingError, EmbeddingResult


def run(coro):
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(("EMBEDDINGS_", "EMBED_", "STORE_")):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def helper_config():
    return HelperConfig(logger=logging.getLogger("test"))


@pytest.fixture
def store_client(helper_config):
    return StoreClientMemory(helper_config=helper_config)


class FakeEmbedClient:
    """Deterministic embeddings: explicit vectors for known texts, hash-derived otherwise."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, failing: set[str] | None = None):
        self.vectors = vectors or {}
        self.failing = failing or set()
        self.calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return self.vectors[text]
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255 + 0.01 for b in digest[:4]]

    async def generate_embedding(self, text, model=None):
        self.calls.append(text)
        if text in self.failing:
            return EmbeddingError(error="backend down", code="NETWORK_ERROR")
        return EmbeddingResult(embedding=self._vector(text), model="fake")

    async def generate_embeddings_batch(self, texts, model=None, on_progress=None):
        results = [await self.generate_embedding(t) for t in texts]
        if on_progress:
            on_progress(len(texts), len(texts))
        return results


@pytest.fixture
def embed_client():
    return FakeEmbedClient()


@dataclass
class Engine:
    store: VectorStore
    retrieval: RetrievalService
    vector_index: VectorIndex
    keyword_index: KeywordIndex
    search_cache: SearchCache
    client: StoreClientMemory


@pytest.fixture
def engine(helper_config, store_client, embed_client):
    search_cache = SearchCache(helper_config=helper_config)
    vector_index = VectorIndex(helper_config=helper_config, store_client=store_client)
    keyword_index = KeywordIndex(helper_config=helper_config)
    store = VectorStore(
        helper_config=helper_config,
        store_client=store_client,
        vector_index=vector_index,
        keyword_index=keyword_index,
        search_cache=search_cache,
    )
    retrieval = RetrievalService(
        helper_config=helper_config,
        vector_store=store,
        embed_client=embed_client,
        vector_index=vector_index,
        keyword_index=keyword_index,
        search_cache=search_cache,
    )
    return Engine(store, retrieval, vector_index, keyword_index, search_cache, store_client)

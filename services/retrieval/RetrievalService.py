"""Hybrid retrieval over the vector store.

Semantic search goes through the local vector index when it is enabled,
built and large enough, and falls back to an exact linear scan otherwise or
when the index fails. Keyword search uses the BM25 index, built lazily on
first use. Hybrid search fuses both scores with configurable weights.
"""

import time
from typing import Callable

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.embeddings.KeywordIndex import KeywordIndex
from shared.embeddings.SearchCache import SearchCache
from shared.embeddings.VectorIndex import VectorIndex
from shared.embeddings.VectorStore import VectorStore
from shared.embeddings.scheduling import iter_batches, yield_control
from shared.embeddings.vector_math import cosine_similarity_optimized, normalize_vector
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import VectorDocument
from shared.models.embedding import EmbeddingError
from shared.models.search import (
    HybridSearchOptions,
    KeywordSearchOptions,
    KeywordSearchResult,
    SearchOptions,
    SearchResult,
    VectorFilter,
)
from shared.models.stats import KeywordIndexStats, VectorIndexStats

HYBRID_OVERFETCH = 3
INDEX_OVERFETCH = 2
CONTEXT_SEPARATOR = "\n\n"
UNKNOWN_SOURCE = "Unknown Source"

ProgressCallback = Callable[[int, int], None]


class RetrievalService:
    """Semantic, keyword and hybrid search plus RAG context assembly."""

    def __init__(
        self,
        helper_config: HelperConfig,
        vector_store: VectorStore,
        embed_client: EmbedClientInterface | None,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        search_cache: SearchCache,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._store = vector_store
        self._embed_client = embed_client
        self._vector_index = vector_index
        self._keyword_index = keyword_index
        self._search_cache = search_cache

    ##########################################
    ################ INDEXES #################
    ##########################################

    async def _ensure_keyword_index(self) -> None:
        if not self._keyword_index.is_built:
            await self._keyword_index.build_from_documents(await self._store.get_all_vectors())

    async def ensure_ready(self, on_progress: ProgressCallback | None = None) -> None:
        """Build whichever derived index is missing (e.g. after a restart)."""
        if self._helper_config.get_embedding_config().use_hnsw:
            await self._vector_index.ensure_ready(on_progress=on_progress)
        await self._ensure_keyword_index()

    async def build_indexes(self, on_progress: ProgressCallback | None = None) -> bool:
        """Rebuild both indexes from the store.

        Returns:
            bool: False if a vector index build was already running.
        """
        started = await self._vector_index.build_index(on_progress=on_progress)
        await self._keyword_index.build_from_documents(await self._store.get_all_vectors())
        self._search_cache.clear()
        return started

    def clear_indexes(self) -> None:
        self._vector_index.clear_index()
        self._keyword_index.clear()
        self._search_cache.clear()

    def get_index_stats(self) -> tuple[VectorIndexStats, KeywordIndexStats]:
        return self._vector_index.get_stats(), self._keyword_index.get_stats()

    ##########################################
    ############ SEMANTIC SEARCH #############
    ##########################################

    async def _search_with_index(
        self,
        query_embedding: list[float],
        candidates: dict[int, VectorDocument],
        filtered: bool,
        limit: int,
        min_similarity: float,
    ) -> list[SearchResult]:
        # with active filters, ask for everything so no in-filter match is cut off
        k = self._vector_index.get_stats().num_elements if filtered else limit * INDEX_OVERFETCH
        results: list[SearchResult] = []
        for doc_id, similarity in self._vector_index.search(query_embedding, k=k, min_similarity=min_similarity):
            doc = candidates.get(doc_id)
            if doc is None:
                continue
            results.append(SearchResult(document=doc, similarity=similarity))
            if len(results) >= limit:
                break
        return results

    async def _search_brute_force(
        self,
        query_embedding: list[float],
        candidates: list[VectorDocument],
        limit: int,
        min_similarity: float,
    ) -> list[SearchResult]:
        query_normalized, query_norm = normalize_vector(query_embedding)
        results: list[SearchResult] = []
        for batch in iter_batches(candidates):
            for doc in batch:
                try:
                    similarity = cosine_similarity_optimized(
                        query_normalized,
                        query_norm,
                        doc.embedding,
                        doc_norm=doc.norm,
                        doc_normalized=doc.normalized_embedding,
                    )
                except ValueError as e:
                    self.logging.warning("Skipping document %s during search: %s", doc.id, e)
                    continue
                if similarity >= min_similarity:
                    results.append(SearchResult(document=doc, similarity=similarity))
            await yield_control()
        results.sort(key=lambda r: (-r.similarity, r.document.id))
        return results[:limit]

    async def search_similar_vectors(
        self,
        query_embedding: list[float],
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Documents most similar to the query embedding.

        Args:
            query_embedding (list[float]): The query vector.
            options (SearchOptions | None): limit, min_similarity and metadata filters.
                Unset values fall back to the engine configuration.

        Returns:
            list[SearchResult]: Best first, at most limit, all >= min_similarity.
        """
        options = options or SearchOptions()
        config = self._helper_config.get_embedding_config()
        limit = options.limit or config.default_search_limit
        min_similarity = config.default_min_similarity if options.min_similarity is None else options.min_similarity

        cache_key = SearchCache.make_key(query_embedding, options)
        cached = self._search_cache.get(cache_key)
        if cached is not None:
            return cached

        started = time.perf_counter()
        filters = options.to_filter()
        candidates = await self._store.get_all_vectors(filters)

        results: list[SearchResult] | None = None
        path = "linear scan"
        if config.use_hnsw:
            try:
                await self._vector_index.ensure_ready()
                if self._vector_index.should_use_hnsw(len(candidates)):
                    results = await self._search_with_index(
                        query_embedding,
                        {doc.id: doc for doc in candidates},
                        filtered=not filters.is_empty(),
                        limit=limit,
                        min_similarity=min_similarity,
                    )
                    path = "vector index"
            except Exception as e:
                self.logging.warning("Vector index search failed, falling back to linear scan: %s", e)
                results = None

        if results is None:
            results = await self._search_brute_force(query_embedding, candidates, limit, min_similarity)

        self._search_cache.set(cache_key, results)
        self.logging.debug(
            "Semantic search via %s over %d candidates returned %d results in %.3fs.",
            path, len(candidates), len(results), time.perf_counter() - started,
        )
        return results

    ##########################################
    ############ KEYWORD SEARCH ##############
    ##########################################

    async def search_keyword(self, query: str, options: KeywordSearchOptions | None = None) -> list[KeywordSearchResult]:
        """BM25 search, building the keyword index on first use."""
        await self._ensure_keyword_index()
        return self._keyword_index.search(query, options)

    ##########################################
    ############# HYBRID SEARCH ##############
    ##########################################

    async def search_hybrid(
        self,
        query_text: str,
        query_embedding: list[float],
        options: HybridSearchOptions | None = None,
    ) -> list[SearchResult]:
        """Fuse keyword and semantic relevance.

        Keyword scores are divided by the best keyword score so they fall in
        [0, 1]; the fused score is keyword_weight * keyword + semantic_weight * similarity.
        Both searches honour the metadata filters.

        Returns:
            list[SearchResult]: Best fused score first, at most limit.
        """
        options = options or HybridSearchOptions()
        config = self._helper_config.get_embedding_config()
        limit = options.limit or config.default_search_limit
        filters: VectorFilter = options.to_filter()

        keyword_results = await self.search_keyword(
            query_text,
            KeywordSearchOptions(limit=limit * HYBRID_OVERFETCH, fuzzy=0.2, prefix=True, combine_with="OR"),
        )
        if not filters.is_empty():
            keyword_results = [r for r in keyword_results if filters.matches(r.document)]

        semantic_options = SearchOptions(
            limit=limit * HYBRID_OVERFETCH,
            min_similarity=options.min_similarity,
            type=options.type,
            session_id=options.session_id,
            file_id=options.file_id,
        )
        semantic_results = await self.search_similar_vectors(query_embedding, semantic_options)

        max_keyword = max((r.score for r in keyword_results), default=0.0)
        fused: dict[int, float] = {}
        documents: dict[int, VectorDocument] = {}
        for r in keyword_results:
            normalized = r.score / max_keyword if max_keyword > 0 else 0.0
            fused[r.id] = fused.get(r.id, 0.0) + options.keyword_weight * normalized
            documents[r.id] = r.document
        for r in semantic_results:
            fused[r.document.id] = fused.get(r.document.id, 0.0) + options.semantic_weight * r.similarity
            documents[r.document.id] = r.document

        ranked = sorted(fused.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [SearchResult(document=documents[doc_id], similarity=score) for doc_id, score in ranked]

    ##########################################
    ############### RAG CONTEXT ##############
    ##########################################

    @staticmethod
    def format_context(results: list[SearchResult] | list[VectorDocument]) -> str:
        blocks: list[str] = []
        for item in results:
            doc = item.document if isinstance(item, SearchResult) else item
            source = doc.metadata.title or doc.metadata.source or UNKNOWN_SOURCE
            blocks.append(f"Source: {source}\n{doc.content}")
        return CONTEXT_SEPARATOR.join(blocks)

    async def retrieve_context(
        self,
        query: str,
        file_ids: list[str] | None = None,
        options: SearchOptions | None = None,
    ) -> str:
        """Context string for a prompt. Never raises: any failure yields "".

        Args:
            query (str): The user query; embedded through the embedding provider.
            file_ids (list[str] | None): Restrict to these files.
            options (SearchOptions | None): limit, min_similarity and further filters.

        Returns:
            str: "Source: <title>\\n<content>" blocks separated by a blank line.
        """
        if self._embed_client is None:
            self.logging.warning("No embedding client configured, returning empty context.")
            return ""
        options = (options or SearchOptions()).model_copy()
        if file_ids is not None:
            options.file_id = file_ids

        try:
            embedding = await self._embed_client.generate_embedding(query)
            if isinstance(embedding, EmbeddingError):
                self.logging.warning("Query embedding failed (%s): %s", embedding.code, embedding.error)
                return ""
            results = await self.search_similar_vectors(embedding.embedding, options)
        except Exception as e:
            self.logging.error("Context retrieval failed, continuing without memory context: %s", e)
            return ""
        return self.format_context(results)

    async def retrieve_full_context(self, doc_type: str, file_id: str | None = None, max_tokens: int | None = None) -> str:
        """Context built from whole stored documents instead of a similarity search."""
        docs, tokens = await self._store.get_all_documents(doc_type, file_id=file_id, max_tokens=max_tokens)
        self.logging.debug("Full context with %d documents (%d tokens).", len(docs), tokens)
        return self.format_context(docs)

"""Durable vector corpus.

The store is the single source of truth. The vector index, the keyword index
and the search cache are derived from it: they are updated on a best-effort
basis after every mutation and can always be rebuilt from the store.
"""

import time
from typing import Callable

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.embeddings.KeywordIndex import KeywordIndex
from shared.embeddings.SearchCache import SearchCache
from shared.embeddings.VectorIndex import VectorIndex
from shared.embeddings.chunker import estimate_tokens
from shared.embeddings.scheduling import SCAN_BATCH_SIZE, iter_batches, yield_control
from shared.embeddings.vector_math import estimate_storage_size, normalize_vector
from shared.errors import IndexNotReadyError, QuotaExceededError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.clock import now_ms
from shared.models.document import DocumentType, VectorDocument, VectorMetadata
from shared.models.search import VectorFilter
from shared.models.stats import StorageStats

MS_PER_DAY = 24 * 60 * 60 * 1000
BYTES_PER_MB = 1024 * 1024
EVICTION_YIELD_EVERY = 50


class VectorStore:
    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        vector_index: VectorIndex | None = None,
        keyword_index: KeywordIndex | None = None,
        search_cache: SearchCache | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._store = store_client
        self._vector_index = vector_index
        self._keyword_index = keyword_index
        self._search_cache = search_cache
        self._clock = clock

    ##########################################
    ############ DERIVED STATE ###############
    ##########################################

    def _index_added(self, doc: VectorDocument) -> None:
        if self._keyword_index is not None:
            self._keyword_index.add_document(doc.id, doc.content, doc)
        if self._vector_index is not None:
            try:
                self._vector_index.add_vector(doc.id, doc.embedding)
            except (IndexNotReadyError, ValueError) as e:
                # recovered by the next full rebuild
                self.logging.debug("Vector index not updated for document %d: %s", doc.id, e)
        if self._search_cache is not None:
            self._search_cache.clear()

    def _forget(self, doc_ids: list[int]) -> None:
        if not doc_ids:
            return
        if self._keyword_index is not None:
            for doc_id in doc_ids:
                self._keyword_index.remove_document(doc_id)
        if self._vector_index is not None:
            self._vector_index.remove_vectors(doc_ids)
        if self._search_cache is not None:
            self._search_cache.clear()

    ##########################################
    ################ SCANS ###################
    ##########################################

    async def _scan(self, filters: VectorFilter | None = None, order_by: str = "id") -> list[VectorDocument]:
        """Read all matching documents in batches, yielding between batches."""
        docs: list[VectorDocument] = []
        last: VectorDocument | None = None
        while True:
            batch = await self._store.do_find(
                filters,
                order_by=order_by,
                limit=SCAN_BATCH_SIZE,
                after_id=last.id if last else None,
                after_timestamp=last.metadata.timestamp if last else None,
            )
            docs.extend(batch)
            if len(batch) < SCAN_BATCH_SIZE:
                return docs
            last = batch[-1]
            await yield_control()

    async def _expired_ids(self, cutoff_ms: int) -> list[int]:
        """Ids of documents older than cutoff_ms, read oldest first and stopping at the first newer page."""
        ids: list[int] = []
        last: VectorDocument | None = None
        while True:
            batch = await self._store.do_find(
                order_by="timestamp",
                limit=SCAN_BATCH_SIZE,
                after_id=last.id if last else None,
                after_timestamp=last.metadata.timestamp if last else None,
            )
            for doc in batch:
                if doc.metadata.timestamp >= cutoff_ms:
                    return ids
                ids.append(doc.id)
            if len(batch) < SCAN_BATCH_SIZE:
                return ids
            last = batch[-1]
            await yield_control()

    async def _delete_in_batches(self, doc_ids: list[int]) -> int:
        """Delete documents EVICTION_YIELD_EVERY at a time, yielding between batches, and drop them from the derived state."""
        deleted = 0
        for batch in iter_batches(doc_ids, EVICTION_YIELD_EVERY):
            deleted += await self._store.do_bulk_delete(list(batch))
            self._forget(list(batch))
            await yield_control()
        return deleted

    async def _find_duplicate(self, content: str, metadata: VectorMetadata) -> VectorDocument | None:
        if not metadata.session_id:
            return None
        for doc in await self._scan(VectorFilter(session_id=metadata.session_id)):
            if metadata.message_id and doc.metadata.message_id:
                if doc.metadata.message_id == metadata.message_id:
                    return doc
            elif doc.content == content:
                return doc
        if metadata.message_id:
            # the message may have been stored under another session
            same_message = await self._store.do_find(VectorFilter(message_id=metadata.message_id), limit=1)
            if same_message:
                return same_message[0]
        return None

    ##########################################
    ################ WRITE ###################
    ##########################################

    async def store_vector(self, content: str, embedding: list[float], metadata: VectorMetadata) -> int:
        """Persist a chunk with its embedding.

        Steps: session deduplication, per-file quota, optional age cleanup,
        normalisation and insert, best-effort index update, storage budget
        enforcement.

        Args:
            content (str): The chunk text.
            embedding (list[float]): Its embedding.
            metadata (VectorMetadata): Origin and scoping metadata.

        Returns:
            int: The id of the new document, or of the existing duplicate.

        Raises:
            QuotaExceededError: If the file already holds max_embeddings_per_file documents.
            ValueError: If the embedding is empty.
        """
        if not embedding:
            raise ValueError("Cannot store an empty embedding")
        config = self._helper_config.get_embedding_config()

        duplicate = await self._find_duplicate(content, metadata)
        if duplicate is not None:
            self.logging.debug("Duplicate content in session '%s', returning id %d.", metadata.session_id, duplicate.id)
            return duplicate.id

        if metadata.file_id and config.max_embeddings_per_file > 0:
            stored = await self._store.do_count(VectorFilter(file_id=metadata.file_id))
            if stored >= config.max_embeddings_per_file:
                raise QuotaExceededError(metadata.file_id, config.max_embeddings_per_file)

        if config.auto_cleanup:
            await self.cleanup_old_vectors(config.cleanup_days_old)

        normalized, norm = normalize_vector(embedding)
        doc = VectorDocument(
            content=content,
            embedding=list(embedding),
            normalized_embedding=normalized,
            norm=norm,
            metadata=metadata,
        )
        doc.id = await self._store.do_add(doc)
        self._index_added(doc)

        await self.check_storage_limit(protected_id=doc.id)
        return doc.id

    async def check_storage_limit(self, protected_id: int | None = None) -> int:
        """Evict the oldest documents until the store fits max_storage_size.

        The protected document (usually the one just stored) is never evicted.

        Returns:
            int: Number of evicted documents.
        """
        max_mb = self._helper_config.get_embedding_config().max_storage_size
        if max_mb <= 0:
            return 0
        budget = max_mb * BYTES_PER_MB

        sized: list[tuple[int, int]] = []
        for doc in await self._scan(order_by="timestamp"):
            sized.append((doc.id, estimate_storage_size(doc)))
        total = sum(size for _, size in sized)
        if total <= budget:
            return 0

        evicted: list[int] = []
        for doc_id, size in sized:
            if total <= budget:
                break
            if doc_id == protected_id:
                continue
            evicted.append(doc_id)
            total -= size
            if len(evicted) % EVICTION_YIELD_EVERY == 0:
                await yield_control()

        await self._delete_in_batches(evicted)
        self.logging.info(
            "Storage limit of %.2f MB exceeded, evicted %d oldest documents (%.2f MB remaining).",
            max_mb, len(evicted), total / BYTES_PER_MB,
        )
        return len(evicted)

    async def delete_vectors(self, filters: VectorFilter | None = None) -> int:
        """Delete every document matching the filter. An empty filter deletes everything."""
        ids = [doc.id for doc in await self._scan(filters or VectorFilter())]
        deleted = await self._delete_in_batches(ids)
        self.logging.info("Deleted %d vectors.", deleted)
        return deleted

    async def clear_all_vectors(self, doc_type: DocumentType | None = None) -> int:
        """Delete all documents, or all documents of one type."""
        if doc_type is not None:
            return await self.delete_vectors(VectorFilter(type=doc_type))
        count = await self._store.do_clear()
        if self._keyword_index is not None:
            self._keyword_index.clear()
        if self._vector_index is not None:
            self._vector_index.clear_index()
        if self._search_cache is not None:
            self._search_cache.clear()
        self.logging.info("Cleared all %d vectors.", count)
        return count

    async def cleanup_old_vectors(self, days: int) -> int:
        """Delete documents older than the given number of days."""
        cutoff = self._clock() - days * MS_PER_DAY
        deleted = await self._delete_in_batches(await self._expired_ids(cutoff))
        if deleted:
            self.logging.info("Cleaned up %d vectors older than %d days.", deleted, days)
        return deleted

    async def remove_duplicate_vectors(self) -> int:
        """Delete documents sharing (content, session_id, file_id, url), keeping the earliest id.

        Returns:
            int: Number of deleted duplicates.
        """
        seen: set[tuple] = set()
        duplicates: list[int] = []
        for doc in await self._scan(order_by="id"):
            meta = doc.metadata
            key = (doc.content, meta.session_id, meta.file_id, meta.url)
            if key in seen:
                duplicates.append(doc.id)
            else:
                seen.add(key)
        deleted = await self._delete_in_batches(duplicates)
        self.logging.info("Removed %d duplicate vectors, kept %d.", deleted, len(seen))
        return deleted

    ##########################################
    ################# READ ###################
    ##########################################

    async def get_document(self, doc_id: int) -> VectorDocument | None:
        return await self._store.do_get(doc_id)

    async def count(self, filters: VectorFilter | None = None) -> int:
        return await self._store.do_count(filters)

    async def get_all_vectors(self, filters: VectorFilter | None = None) -> list[VectorDocument]:
        return await self._scan(filters, order_by="id")

    async def get_vectors_by_context(self, filters: VectorFilter | None = None) -> list[VectorDocument]:
        """Documents matching the filter, oldest first."""
        return await self._scan(filters, order_by="timestamp")

    async def get_all_documents(
        self,
        doc_type: DocumentType,
        file_id: str | None = None,
        max_tokens: int | None = None,
    ) -> tuple[list[VectorDocument], int]:
        """Documents of a type (optionally one file), oldest first, within a token budget.

        Returns:
            tuple[list[VectorDocument], int]: The documents and their estimated token count.
        """
        docs: list[VectorDocument] = []
        tokens = 0
        for doc in await self._scan(VectorFilter(type=doc_type, file_id=file_id), order_by="timestamp"):
            doc_tokens = estimate_tokens(doc.content)
            if max_tokens is not None and tokens + doc_tokens > max_tokens:
                break
            docs.append(doc)
            tokens += doc_tokens
        return docs, tokens

    async def get_storage_stats(self) -> StorageStats:
        started = time.perf_counter()
        counts: dict[str, int] = {}
        size = 0
        for doc in await self._scan():
            counts[doc.metadata.type] = counts.get(doc.metadata.type, 0) + 1
            size += estimate_storage_size(doc)
        self.logging.debug("Storage stats computed in %.2fs.", time.perf_counter() - started)
        return StorageStats(
            total_vectors=sum(counts.values()),
            total_size_mb=round(size / BYTES_PER_MB, 4),
            counts_by_type=counts,
        )

"""Local nearest-neighbour index over the stored embeddings.

LocalVectorIndex keeps unit-length float32 rows in a numpy matrix and
answers queries with a single matrix-vector product. VectorIndex wraps it
with the lifecycle the rest of the engine relies on: an explicit
initialise/build step, a single build in flight at a time, lazy rebuild
after a restart, and incremental add/remove once ready.
"""

import asyncio
import time
from typing import Callable

import numpy as np

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.embeddings.scheduling import SCAN_BATCH_SIZE, yield_control
from shared.errors import DimensionMismatchError, IndexNotReadyError
from shared.helper.HelperConfig import HelperConfig
from shared.models.stats import VectorIndexStats

INITIAL_CAPACITY = 64


class LocalVectorIndex:
    """In-memory cosine index. Re-adding an id replaces its vector."""

    def __init__(self) -> None:
        self.dimension = 0
        self.is_initialized = False
        self._matrix = np.zeros((0, 0), dtype=np.float32)
        self._ids: list[int] = []
        self._rows: dict[int, int] = {}

    def initialize(self, dimension: int) -> None:
        """Reset the index for vectors of the given dimension. 0 adopts the dimension of the first vector."""
        self.dimension = dimension
        self._matrix = np.zeros((INITIAL_CAPACITY, dimension), dtype=np.float32)
        self._ids = []
        self._rows = {}
        self.is_initialized = True

    @property
    def count(self) -> int:
        return len(self._ids)

    def __contains__(self, doc_id: int) -> bool:
        return doc_id in self._rows

    def _unit(self, vector) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float32)
        if arr.ndim != 1 or arr.size == 0:
            raise ValueError("Embedding must be a non-empty flat vector")
        if arr.size != self.dimension:
            raise DimensionMismatchError(self.dimension, int(arr.size))
        norm = float(np.linalg.norm(arr))
        return arr / norm if norm > 0 else arr

    def add_vector(self, doc_id: int, embedding) -> None:
        if not self.is_initialized:
            raise IndexNotReadyError("Vector index is not initialised")
        if self.dimension == 0:
            self.initialize(len(embedding))
        row = self._unit(embedding)
        if doc_id in self._rows:
            self._matrix[self._rows[doc_id]] = row
            return
        if self.count >= self._matrix.shape[0]:
            grown = np.zeros((max(INITIAL_CAPACITY, self._matrix.shape[0] * 2), self.dimension), dtype=np.float32)
            grown[:self.count] = self._matrix[:self.count]
            self._matrix = grown
        self._matrix[self.count] = row
        self._rows[doc_id] = self.count
        self._ids.append(doc_id)

    def remove_vector(self, doc_id: int) -> bool:
        row = self._rows.pop(doc_id, None)
        if row is None:
            return False
        last = self.count - 1
        if row != last:
            # move the last row into the gap
            moved_id = self._ids[last]
            self._matrix[row] = self._matrix[last]
            self._ids[row] = moved_id
            self._rows[moved_id] = row
        self._ids.pop()
        return True

    def search(self, query, k: int, min_similarity: float = -1.0) -> list[tuple[int, float]]:
        """Return up to k (id, similarity) pairs with similarity >= min_similarity, best first."""
        if self.count == 0 or k <= 0:
            return []
        q = self._unit(query)
        if not np.any(q):
            return []
        sims = self._matrix[:self.count] @ q
        order = np.argsort(-sims, kind="stable")
        results: list[tuple[int, float]] = []
        for row in order:
            similarity = float(sims[row])
            if similarity < min_similarity:
                break
            results.append((self._ids[row], similarity))
            if len(results) >= k:
                break
        return results

    def clear(self) -> None:
        self.initialize(self.dimension)

    def memory_size_mb(self) -> float:
        return round((self._matrix.nbytes + len(self._ids) * 16) / (1024 * 1024), 4)


class VectorIndex:
    """Lifecycle manager around LocalVectorIndex, fed from the persistence client."""

    def __init__(self, helper_config: HelperConfig, store_client: StoreClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._store = store_client
        self._index = LocalVectorIndex()
        self._is_building = False
        self._build_progress = 0.0
        self._build_done: asyncio.Event | None = None
        # cleared without a rebuild: searchable but missing stored documents
        self._stale = False
        # changes made while a build is running, replayed on the fresh index
        self._pending_adds: dict[int, list[float]] = {}
        self._pending_removals: set[int] = set()

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    @property
    def is_ready(self) -> bool:
        return self._index.is_initialized

    @property
    def is_building(self) -> bool:
        return self._is_building

    def initialize(self, dimension: int) -> None:
        """Start with an empty index, e.g. for a fresh store."""
        self._index = LocalVectorIndex()
        self._index.initialize(dimension)
        self._stale = False

    async def build_index(self, on_progress: Callable[[int, int], None] | None = None) -> bool:
        """Rebuild the index from every document in the store.

        Documents are read in batches of 100 with a yield between batches.
        Documents whose embedding cannot be indexed are logged and skipped.

        Returns:
            bool: False if a build was already running (nothing was done).
        """
        if self._is_building:
            self.logging.debug("Vector index build already in progress, skipping.")
            return False

        self._is_building = True
        self._build_progress = 0.0
        self._build_done = asyncio.Event()
        self._pending_adds = {}
        self._pending_removals = set()
        started = time.perf_counter()
        try:
            total = await self._store.do_count()
            fresh = LocalVectorIndex()
            fresh.initialize(0)
            done = skipped = 0
            last_id = None
            while True:
                batch = await self._store.do_find(order_by="id", limit=SCAN_BATCH_SIZE, after_id=last_id)
                if not batch:
                    break
                last_id = batch[-1].id
                for doc in batch:
                    try:
                        fresh.add_vector(doc.id, doc.embedding)
                    except ValueError as e:
                        skipped += 1
                        self.logging.warning("Skipping document %s while building vector index: %s", doc.id, e)
                done += len(batch)
                self._build_progress = min(1.0, done / total) if total else 1.0
                if on_progress:
                    on_progress(done, max(total, done))
                await yield_control()

            for doc_id in self._pending_removals:
                fresh.remove_vector(doc_id)
            for doc_id, embedding in self._pending_adds.items():
                try:
                    fresh.add_vector(doc_id, embedding)
                except ValueError as e:
                    self.logging.warning("Skipping document %s added during build: %s", doc_id, e)

            self._index = fresh
            self._stale = False
            self._build_progress = 1.0
            self.logging.info(
                "Vector index built with %d vectors (%d skipped) in %.2fs.",
                fresh.count, skipped, time.perf_counter() - started,
            )
            return True
        finally:
            self._is_building = False
            self._pending_adds = {}
            self._pending_removals = set()
            self._build_done.set()

    async def ensure_ready(self, on_progress: Callable[[int, int], None] | None = None) -> bool:
        """Build the index if it was never built or was cleared, or wait for a running build.

        Returns:
            bool: True if the index is ready afterwards.
        """
        if self.is_ready and not self._stale and not self._is_building:
            return True
        if self._is_building and self._build_done is not None:
            await self._build_done.wait()
            return self.is_ready
        await self.build_index(on_progress=on_progress)
        return self.is_ready

    ##########################################
    ############### MUTATION #################
    ##########################################

    def add_vector(self, doc_id: int, embedding: list[float]) -> None:
        """Add one vector incrementally.

        Raises:
            IndexNotReadyError: If the index was never built or initialised.
            DimensionMismatchError: If the vector does not match the index dimension.
        """
        if self._is_building:
            self._pending_removals.discard(doc_id)
            self._pending_adds[doc_id] = embedding
            return
        if not self.is_ready:
            raise IndexNotReadyError("Vector index is not built yet")
        self._index.add_vector(doc_id, embedding)

    def remove_vectors(self, doc_ids: list[int]) -> int:
        if self._is_building:
            for doc_id in doc_ids:
                self._pending_adds.pop(doc_id, None)
                self._pending_removals.add(doc_id)
        return sum(1 for doc_id in doc_ids if self._index.remove_vector(doc_id))

    def clear_index(self) -> None:
        """Drop all vectors.

        The index stays initialised and searches return [] until vectors are
        added again. The next ensure_ready() rebuilds it from the store.
        """
        self._index = LocalVectorIndex()
        self._index.initialize(0)
        self._stale = True
        self._build_progress = 0.0

    ##########################################
    ################# SEARCH #################
    ##########################################

    def search(self, query: list[float], k: int = 10, min_similarity: float | None = None) -> list[tuple[int, float]]:
        """Nearest neighbours of the query.

        Raises:
            IndexNotReadyError: If the index is not ready.
            DimensionMismatchError: If the query dimension differs from the index.
        """
        if not self.is_ready:
            raise IndexNotReadyError("Vector index is not built yet")
        if min_similarity is None:
            min_similarity = self._helper_config.get_embedding_config().default_min_similarity
        return self._index.search(query, k, min_similarity)

    def should_use_hnsw(self, total_vectors: int) -> bool:
        """Whether a query over total_vectors candidates should go through the index."""
        config = self._helper_config.get_embedding_config()
        if not config.use_hnsw:
            return False
        if total_vectors < config.hnsw_min_vectors:
            return False
        return self.is_ready and not self._stale and self._index.count > 0

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_stats(self) -> VectorIndexStats:
        return VectorIndexStats(
            is_initialized=self.is_ready,
            dimension=self._index.dimension,
            num_elements=self._index.count,
            is_building=self._is_building,
            build_progress=self._build_progress,
            memory_size_mb=self._index.memory_size_mb(),
        )

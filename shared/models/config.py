from typing import Literal

from pydantic import BaseModel, Field


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required for a env setting.

    Attributes:
        env_key (str): The key/name of the environment variable to read.
        val_type (str): The expected type of the environment variable's value. Supported types are "string", "number", "bool", and "list".
        default (str | int | bool | list | None): An optional default value if the environment variable is not set. If None, the variable is required and an error will be raised if it is not set.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None


class EmbeddingConfig(BaseModel):
    """
    Tunables of the memory engine. Every field can be overridden with an
    environment variable named EMBEDDINGS_<FIELD_NAME> (e.g. EMBEDDINGS_CHUNK_SIZE).

    Attributes:
        chunk_size (int): Target chunk size in tokens.
        chunk_overlap (int): Overlap between consecutive chunks in tokens.
        chunking_strategy (str): "fixed", "semantic" or "hybrid".
        batch_size (int): Number of texts embedded concurrently per batch.
        enable_caching (bool): Memoise embeddings by content hash.
        max_embeddings_per_file (int): Per-file quota. 0 disables the quota.
        max_storage_size (float): Storage budget in MB. 0 disables eviction.
        auto_cleanup (bool): Delete documents older than cleanup_days_old on every store.
        cleanup_days_old (int): Age threshold in days for auto cleanup.
        default_search_limit (int): Result limit when none is given.
        default_min_similarity (float): Similarity threshold when none is given.
        search_cache_ttl (float): Search cache time-to-live in minutes.
        search_cache_max_size (int): Maximum number of cached queries.
        use_hnsw (bool): Use the local vector index instead of a linear scan.
        hnsw_min_vectors (int): Minimum candidate count before the vector index is used.
    """

    # chunking
    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=100, ge=0)
    chunking_strategy: Literal["fixed", "semantic", "hybrid"] = "hybrid"

    # embedding provider
    batch_size: int = Field(default=5, gt=0)
    enable_caching: bool = True

    # storage lifecycle
    max_embeddings_per_file: int = Field(default=1000, ge=0)
    max_storage_size: float = Field(default=100, ge=0)
    auto_cleanup: bool = False
    cleanup_days_old: int = Field(default=30, ge=0)

    # search
    default_search_limit: int = Field(default=10, gt=0)
    default_min_similarity: float = 0.5
    search_cache_ttl: float = Field(default=5, ge=0)
    search_cache_max_size: int = Field(default=50, ge=0)
    use_hnsw: bool = True
    hnsw_min_vectors: int = Field(default=0, ge=0)

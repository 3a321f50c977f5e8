from pydantic import BaseModel


class StorageStats(BaseModel):
    total_vectors: int
    total_size_mb: float
    counts_by_type: dict[str, int]


class VectorIndexStats(BaseModel):
    is_initialized: bool
    dimension: int
    num_elements: int
    is_building: bool
    build_progress: float
    memory_size_mb: float


class KeywordIndexStats(BaseModel):
    document_count: int
    term_count: int
    is_built: bool
    memory_size_mb: float

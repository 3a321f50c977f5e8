"""Exception taxonomy for the memory engine."""


class MemoryEngineError(Exception):
    """Base exception for all memory engine errors."""

    pass


class InvalidConfigError(MemoryEngineError, ValueError):
    """Invalid chunking or engine configuration."""

    pass


class QuotaExceededError(MemoryEngineError):
    """A file already holds the maximum number of embeddings."""

    def __init__(self, file_id: str, max_embeddings: int) -> None:
        self.file_id = file_id
        self.max_embeddings = max_embeddings
        super().__init__(f"Maximum embeddings per file ({max_embeddings}) reached for file '{file_id}'")


class DimensionMismatchError(MemoryEngineError, ValueError):
    """Two vectors (or a vector and an index) disagree on dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")


class IndexNotReadyError(MemoryEngineError, RuntimeError):
    """The vector index was used before it was initialised or built."""

    pass


class EmbeddingRequestError(MemoryEngineError):
    """Embedding backend call failed. Carries a machine readable code."""

    def __init__(self, message: str, code: str) -> None:
        self.code = code
        super().__init__(message)
